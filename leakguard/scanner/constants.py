"""
Central constants for the LeakGuard scanner.

All magic numbers, timeouts, and limits defined here.
Import from this module rather than hardcoding values.
"""

__all__ = [
    # Timeouts
    "RULE_TIMEOUT",
    "THREAD_JOIN_TIMEOUT",
    # File processing
    "MAX_FILE_SIZE_BYTES",
    "MAX_DOCUMENT_PAGES",
    "MAX_SPREADSHEET_ROWS",
    "FILE_HEAD_SIZE",
    # Archives
    "MAX_ARCHIVE_NESTING_DEPTH",
    "MAX_FILES_PER_ARCHIVE",
    "MAX_SINGLE_FILE_SIZE",
    "MAX_DECOMPRESSED_SIZE",
    "MAX_EXTRACTION_RATIO",
    "RATIO_CHECK_MIN_SIZE",
    # Detection
    "MAX_DETECTOR_WORKERS",
    "MAX_CANDIDATES_PER_RULE",
    "MAX_RUNAWAY_EVALUATIONS",
    # Alerts
    "MAX_SNIPPET_LENGTH",
    # Extensions
    "TEXT_EXTENSIONS",
    "SPREADSHEET_EXTENSIONS",
    "PDF_EXTENSIONS",
    "ARCHIVE_EXTENSIONS",
]

# --- TIMEOUTS (seconds) ---
RULE_TIMEOUT = 2.0  # Per-rule evaluation budget per file
THREAD_JOIN_TIMEOUT = 5.0

# --- FILE PROCESSING ---
MAX_FILE_SIZE_BYTES = 100 * 1024 * 1024  # 100MB file limit
MAX_DOCUMENT_PAGES = 500  # Max PDF pages to extract
MAX_SPREADSHEET_ROWS = 50000  # Per-sheet row limit
FILE_HEAD_SIZE = 512  # Bytes inspected for magic numbers

# --- ARCHIVES ---
MAX_ARCHIVE_NESTING_DEPTH = 3  # Prevent deeply nested zip bombs
MAX_FILES_PER_ARCHIVE = 1000  # Limit member count per archive
MAX_SINGLE_FILE_SIZE = 50 * 1024 * 1024  # 50MB per extracted member

# Decompression bomb protection
MAX_DECOMPRESSED_SIZE = 500 * 1024 * 1024  # 500MB max decompressed
MAX_EXTRACTION_RATIO = 100  # Max ratio of decompressed:compressed size
RATIO_CHECK_MIN_SIZE = 1024 * 1024  # Smaller members are exempt from the ratio check

# --- DETECTION ---
MAX_DETECTOR_WORKERS = 8
MAX_CANDIDATES_PER_RULE = 1000  # Validator-rejected matches examined before giving up
MAX_RUNAWAY_EVALUATIONS = 5

# --- ALERTS ---
MAX_SNIPPET_LENGTH = 256

# --- EXTENSIONS ---
TEXT_EXTENSIONS = frozenset({
    ".txt", ".text", ".md", ".rst", ".log", ".csv", ".tsv",
    ".json", ".jsonl", ".xml", ".yaml", ".yml", ".toml",
    ".html", ".htm", ".sql", ".env", ".ini", ".cfg", ".conf", ".config",
    ".properties", ".py", ".js", ".ts", ".java", ".go", ".rb", ".sh",
    ".ps1", ".bat", ".eml", ".rtf", ".tex",
})

SPREADSHEET_EXTENSIONS = frozenset({".xlsx", ".xlsm"})

PDF_EXTENSIONS = frozenset({".pdf"})

ARCHIVE_EXTENSIONS = frozenset({
    ".zip", ".tar", ".tgz", ".tar.gz", ".tar.bz2", ".tbz2",
    ".tar.xz", ".txz", ".gz", ".7z",
})
