"""
spawnsql faults - typed fault signals.

Every failure raised by spawnsql is a ``Fault``: a stable code, a message,
a domain and metadata naming the migration, fragment or hash involved.
Nothing retries on its own; the CLI reports the fault and exits non-zero.
"""

from .core import (
    Fault,
    FaultDomain,
    Severity,
    DOMAIN_DEFAULTS,
)

from .domains import (
    # Config
    ConfigFault,
    ConfigMissingFault,
    ConfigInvalidFault,
    # Storage
    StorageFault,
    ObjectNotFoundFault,
    ObjectWriteFault,
    NotADirectoryFault,
    SnapshotIOFault,
    LockFileMissingFault,
    # Corruption
    CorruptionFault,
    CorruptTreeFault,
    CorruptLockFault,
    # Template
    TemplateFault,
    TemplateNotFoundFault,
    FragmentNotFoundFault,
    RenderFault,
    InvalidValueFault,
    UninitializedSourceFault,
    VariablesFault,
    # Migration
    MigrationStateFault,
    AlreadyAppliedFault,
    PreviousAttemptFailedFault,
    AdvisoryLockFault,
    AppliedButNotRecordedFault,
    MigrationNotFoundFault,
    MigrationExistsFault,
    SqlTestNotFoundFault,
    SqlTestExistsFault,
    # Process
    ProcessFault,
    EngineUnavailableFault,
)

__all__ = [
    "Fault",
    "FaultDomain",
    "Severity",
    "DOMAIN_DEFAULTS",
    "ConfigFault",
    "ConfigMissingFault",
    "ConfigInvalidFault",
    "StorageFault",
    "ObjectNotFoundFault",
    "ObjectWriteFault",
    "NotADirectoryFault",
    "SnapshotIOFault",
    "LockFileMissingFault",
    "CorruptionFault",
    "CorruptTreeFault",
    "CorruptLockFault",
    "TemplateFault",
    "TemplateNotFoundFault",
    "FragmentNotFoundFault",
    "RenderFault",
    "InvalidValueFault",
    "UninitializedSourceFault",
    "VariablesFault",
    "MigrationStateFault",
    "AlreadyAppliedFault",
    "PreviousAttemptFailedFault",
    "AdvisoryLockFault",
    "AppliedButNotRecordedFault",
    "MigrationNotFoundFault",
    "MigrationExistsFault",
    "SqlTestNotFoundFault",
    "SqlTestExistsFault",
    "ProcessFault",
    "EngineUnavailableFault",
]
