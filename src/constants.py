"""Constants used in the project."""

from enum import Enum


class CacheNamespace(Enum):
    """Key prefixes used in the shared cache store.

    Args:
        Enum (string): Prefix placed before the package name.
    """

    METADATA = "metadata"
    RESOLVED = "resolved"


class LifecycleScripts(Enum):
    """npm lifecycle scripts that run automatically on install.

    Args:
        Enum (string): Script key in package.json.
    """

    PREINSTALL = "preinstall"
    INSTALL = "install"
    POSTINSTALL = "postinstall"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_NPM = "https://registry.npmjs.org"
    # full documents; the abbreviated install-v1 form drops main, exports and scripts
    REGISTRY_ACCEPT_HEADER = "application/json"
    USER_AGENT = "vnpm/0.1"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    METADATA_TTL_SEC = 300
    CACHE_MAX_ENTRIES = 10000

    PACKAGE_JSON_FILE = "package.json"
    LOCKFILE_NAME = "package-lock.json"
    NODE_MODULES_DIR = "node_modules"
    DEFAULT_MAIN = "index.js"
    LOCKFILE_VERSION = 1
    LOCKFILE_DEFAULT_NAME = "vnpm-generated-lock"
    LOCKFILE_DEFAULT_VERSION = "1.0.0"
    UNKNOWN_INTEGRITY = "sha512-unknown"
    LATEST_TAG = "latest"

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_LOG_LEVEL = "VNPM_LOG_LEVEL"
    ENV_REGISTRY_URL = "VNPM_REGISTRY_URL"
    ENV_METADATA_TTL = "VNPM_METADATA_TTL"
    ENV_TIMEOUT = "VNPM_TIMEOUT"
    ENV_DETECT_CYCLES = "VNPM_DETECT_CYCLES"
    ENV_POLICY_FILE = "VNPM_POLICY_FILE"

    # Packages that need a native toolchain or a real host to build/run.
    NATIVE_PACKAGES = [
        "sharp",
        "canvas",
        "sqlite3",
        "bcrypt",
        "node-gyp",
        "prisma",
        "puppeteer",
        "playwright",
        "selenium-webdriver",
    ]
    BLOCKED_SCRIPT_PATTERNS = [
        r"\brm\s+-[a-zA-Z]*r[a-zA-Z]*f?\s+/",
        r"\bcurl\b[^|]*\|\s*(ba|z)?sh\b",
        r"\bwget\b[^|]*\|\s*(ba|z)?sh\b",
        r"\bnode-gyp\b",
        r"\bsudo\b",
        r"\bchmod\s+[0-7]*7[0-7]*\s",
        r"\beval\b",
        r"\bmkfs\b",
        r"\bdd\s+if=",
    ]
