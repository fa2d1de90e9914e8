# Ledger format
FORMAT_VERSION = "1"

KEY_VERSION = "version"
KEY_SETTINGS = "settings"
KEY_ROOT_DIR = "rootDir"
KEY_HASH_ALGORITHM = "hashAlgorithm"
KEY_FILES = "files"
KEY_HASH = "hash"
KEY_LAST_MODIFIED = "lastModified"

# Hashing
DEFAULT_HASH_ALGORITHM = "Keccak_512"
DEFAULT_CHUNK_SIZE = 1_048_576  # 1 MiB

# Ledger location meaning "stdin in, stdout out" on the command line
STDIO_LEDGER = "-"
