"""Stable error identifiers for log correlation and alerting."""


class ErrorIds:
    STORAGE_UPLOAD_FAILED = "BANKREC-STORAGE-001"
    STORAGE_DELETE_FAILED = "BANKREC-STORAGE-002"
    STORAGE_DOWNLOAD_FAILED = "BANKREC-STORAGE-003"
    IMPORT_JOB_PERSIST_FAILED = "BANKREC-IMPORT-001"
    IMPORT_DUPLICATE_RACE = "BANKREC-IMPORT-002"
    AUTO_MATCH_PAIR_FAILED = "BANKREC-MATCH-001"
    AUTO_MATCH_COMMIT_FAILED = "BANKREC-MATCH-003"
    MANUAL_MATCH_FAILED = "BANKREC-MATCH-002"
