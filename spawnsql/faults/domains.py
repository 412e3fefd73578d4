"""
spawnsql faults - Domain-specific fault types.

Provides concrete fault classes for each domain:
- CONFIG faults
- STORAGE faults
- CORRUPTION faults
- TEMPLATE faults
- MIGRATION faults
- PROCESS faults
"""

from typing import Any, Optional
from .core import Fault, FaultDomain, Severity


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigFault(Fault):
    """Base class for configuration faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.FATAL,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CONFIG,
            severity=severity,
            retryable=False,
            metadata=metadata,
        )


class ConfigMissingFault(ConfigFault):
    """Required configuration is missing."""

    def __init__(self, key: str, **kwargs):
        super().__init__(
            code="CONFIG_MISSING",
            message=f"Required configuration key '{key}' is missing",
            metadata={"key": key, **kwargs.get("metadata", {})},
        )


class ConfigInvalidFault(ConfigFault):
    """Configuration value is invalid."""

    def __init__(self, key: str, reason: str, **kwargs):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Configuration key '{key}' is invalid: {reason}",
            metadata={"key": key, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# STORAGE Faults
# ============================================================================

class StorageFault(Fault):
    """Base class for object store and filesystem faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.STORAGE,
            severity=severity,
            retryable=False,
            metadata=metadata,
        )


class ObjectNotFoundFault(StorageFault):
    """A content-addressed object is missing or unreadable."""

    def __init__(self, digest: str, path: str, reason: str = "", **kwargs):
        detail = f": {reason}" if reason else ""
        super().__init__(
            code="OBJECT_NOT_FOUND",
            message=f"Object '{digest}' not found at '{path}'{detail}",
            metadata={"hash": digest, "path": path, "reason": reason, **kwargs.get("metadata", {})},
        )


class ObjectWriteFault(StorageFault):
    """A content-addressed object could not be written."""

    def __init__(self, digest: str, path: str, reason: str, **kwargs):
        super().__init__(
            code="OBJECT_WRITE_FAILED",
            message=f"Could not write object '{digest}' to '{path}': {reason}",
            metadata={"hash": digest, "path": path, "reason": reason, **kwargs.get("metadata", {})},
        )


class NotADirectoryFault(StorageFault):
    """Snapshot was asked to walk something that is not a directory."""

    def __init__(self, path: str, **kwargs):
        super().__init__(
            code="NOT_A_DIRECTORY",
            message=f"Cannot snapshot '{path}': not a directory",
            metadata={"path": path, **kwargs.get("metadata", {})},
        )


class SnapshotIOFault(StorageFault):
    """A file under a snapshot root could not be read."""

    def __init__(self, path: str, reason: str, **kwargs):
        super().__init__(
            code="SNAPSHOT_IO",
            message=f"Could not read '{path}' while snapshotting: {reason}",
            metadata={"path": path, "reason": reason, **kwargs.get("metadata", {})},
        )


class LockFileMissingFault(StorageFault):
    """A pinned operation was requested for a migration that was never pinned."""

    def __init__(self, migration: str, path: str, **kwargs):
        super().__init__(
            code="LOCK_FILE_MISSING",
            message=f"Migration '{migration}' has no lock file at '{path}' (run 'migration pin' first)",
            metadata={"migration": migration, "path": path, **kwargs.get("metadata", {})},
        )


# ============================================================================
# CORRUPTION Faults
# ============================================================================

class CorruptionFault(Fault):
    """Base class for malformed stored data."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.FATAL,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CORRUPTION,
            severity=severity,
            retryable=False,
            metadata=metadata,
        )


class CorruptTreeFault(CorruptionFault):
    """Stored object cannot be decoded as a tree."""

    def __init__(self, digest: str, reason: str, **kwargs):
        super().__init__(
            code="CORRUPT_TREE",
            message=f"Object '{digest}' is not a valid tree: {reason}",
            metadata={"hash": digest, "reason": reason, **kwargs.get("metadata", {})},
        )


class CorruptLockFault(CorruptionFault):
    """Lock file exists but cannot be parsed."""

    def __init__(self, path: str, reason: str, **kwargs):
        super().__init__(
            code="CORRUPT_LOCK",
            message=f"Lock file '{path}' is invalid: {reason}",
            metadata={"path": path, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# TEMPLATE Faults
# ============================================================================

class TemplateFault(Fault):
    """Base class for template loading and rendering faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.TEMPLATE,
            severity=severity,
            retryable=False,
            metadata=metadata,
        )


class TemplateNotFoundFault(TemplateFault):
    """The root migration or test script does not exist."""

    def __init__(self, name: str, **kwargs):
        super().__init__(
            code="TEMPLATE_NOT_FOUND",
            message=f"Template '{name}' not found",
            metadata={"name": name, **kwargs.get("metadata", {})},
        )


class FragmentNotFoundFault(TemplateFault):
    """An included or imported component could not be resolved."""

    def __init__(self, name: str, template: str = "", **kwargs):
        where = f" (referenced from '{template}')" if template else ""
        super().__init__(
            code="FRAGMENT_NOT_FOUND",
            message=f"Component '{name}' not found{where}",
            metadata={"name": name, "template": template, **kwargs.get("metadata", {})},
        )


class RenderFault(TemplateFault):
    """Syntax or evaluation failure while rendering."""

    def __init__(self, name: str, reason: str, **kwargs):
        super().__init__(
            code="RENDER_FAILED",
            message=f"Could not render '{name}': {reason}",
            metadata={"name": name, "reason": reason, **kwargs.get("metadata", {})},
        )


class InvalidValueFault(TemplateFault):
    """A template expression produced a value with no SQL form."""

    def __init__(self, value_type: str, reason: str, **kwargs):
        super().__init__(
            code="INVALID_VALUE",
            message=f"Cannot format value of type '{value_type}' as SQL: {reason}",
            metadata={"value_type": value_type, "reason": reason, **kwargs.get("metadata", {})},
        )


class UninitializedSourceFault(TemplateFault):
    """A pinned component source was used before its mapping was resolved."""

    def __init__(self, name: str, **kwargs):
        super().__init__(
            code="SOURCE_UNINITIALIZED",
            message=f"Pinned component source used before initialization (loading '{name}')",
            metadata={"name": name, **kwargs.get("metadata", {})},
        )


class VariablesFault(TemplateFault):
    """A variables file could not be loaded."""

    def __init__(self, path: str, reason: str, **kwargs):
        super().__init__(
            code="VARIABLES_INVALID",
            message=f"Could not load variables from '{path}': {reason}",
            metadata={"path": path, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# MIGRATION Faults
# ============================================================================

class MigrationStateFault(Fault):
    """Base class for migration ledger conflicts."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.MIGRATION,
            severity=severity,
            retryable=False,
            metadata=metadata,
        )


class AlreadyAppliedFault(MigrationStateFault):
    """The ledger already records this migration as successful."""

    def __init__(self, info: Any, **kwargs):
        self.info = info
        super().__init__(
            code="ALREADY_APPLIED",
            message=(
                f"Migration '{info.migration_name}' in namespace '{info.namespace}' "
                f"is already applied ({info.last_activity})"
            ),
            severity=Severity.WARN,
            metadata={
                "migration": info.migration_name,
                "namespace": info.namespace,
                "_info": info,
                **kwargs.get("metadata", {}),
            },
        )


class PreviousAttemptFailedFault(MigrationStateFault):
    """The last attempt did not finish successfully; manual intervention required."""

    def __init__(self, status: Any, info: Any, **kwargs):
        self.status = status
        self.info = info
        super().__init__(
            code="PREVIOUS_ATTEMPT_FAILED",
            message=(
                f"Migration '{info.migration_name}' in namespace '{info.namespace}' "
                f"has status {status} from a previous attempt; "
                f"inspect the database, then use 'migration adopt' or '--retry'"
            ),
            metadata={
                "migration": info.migration_name,
                "namespace": info.namespace,
                "status": str(status),
                "_info": info,
                **kwargs.get("metadata", {}),
            },
        )


class AdvisoryLockFault(MigrationStateFault):
    """The namespace advisory lock could not be acquired."""

    def __init__(self, migration: str, namespace: str, cause: str, **kwargs):
        super().__init__(
            code="ADVISORY_LOCK",
            message=(
                f"Could not acquire advisory lock for namespace '{namespace}' "
                f"while applying '{migration}': {cause}"
            ),
            metadata={
                "migration": migration,
                "namespace": namespace,
                "cause": cause,
                **kwargs.get("metadata", {}),
            },
        )


class AppliedButNotRecordedFault(MigrationStateFault):
    """SQL ran to completion but the ledger does not say so."""

    def __init__(self, migration: str, namespace: str, reason: str, **kwargs):
        super().__init__(
            code="APPLIED_BUT_NOT_RECORDED",
            message=(
                f"Migration '{migration}' in namespace '{namespace}' was applied but "
                f"recording its success failed: {reason}. The ledger must be reconciled manually."
            ),
            severity=Severity.FATAL,
            metadata={
                "migration": migration,
                "namespace": namespace,
                "reason": reason,
                **kwargs.get("metadata", {}),
            },
        )


class MigrationNotFoundFault(MigrationStateFault):
    """No migration folder or script with this name."""

    def __init__(self, migration: str, path: str, **kwargs):
        super().__init__(
            code="MIGRATION_NOT_FOUND",
            message=f"Migration '{migration}' not found at '{path}'",
            metadata={"migration": migration, "path": path, **kwargs.get("metadata", {})},
        )


class MigrationExistsFault(MigrationStateFault):
    """A new migration would overwrite an existing one."""

    def __init__(self, migration: str, path: str, **kwargs):
        super().__init__(
            code="MIGRATION_EXISTS",
            message=f"Migration '{migration}' already exists at '{path}'",
            metadata={"migration": migration, "path": path, **kwargs.get("metadata", {})},
        )


class SqlTestNotFoundFault(MigrationStateFault):
    """A SQL test or its expected output is missing."""

    def __init__(self, test: str, path: str, **kwargs):
        super().__init__(
            code="SQL_TEST_NOT_FOUND",
            message=f"Test '{test}': nothing at '{path}'",
            metadata={"test": test, "path": path, **kwargs.get("metadata", {})},
        )


class SqlTestExistsFault(MigrationStateFault):
    """A new test would overwrite an existing one."""

    def __init__(self, test: str, path: str, **kwargs):
        super().__init__(
            code="SQL_TEST_EXISTS",
            message=f"Test '{test}' already exists at '{path}'",
            metadata={"test": test, "path": path, **kwargs.get("metadata", {})},
        )


# ============================================================================
# PROCESS Faults
# ============================================================================

class ProcessFault(Fault):
    """The database engine process failed."""

    def __init__(self, exit_code: Optional[int], stderr: str, *, command: str = "", **kwargs):
        self.exit_code = exit_code
        self.stderr = stderr
        detail = stderr.strip() or "no error output"
        super().__init__(
            code="PROCESS_FAILED",
            message=f"Database process exited with code {exit_code}: {detail}",
            domain=FaultDomain.PROCESS,
            metadata={
                "exit_code": exit_code,
                "stderr": stderr,
                "command": command,
                **kwargs.get("metadata", {}),
            },
        )


class EngineUnavailableFault(Fault):
    """The configured engine could not be started or is unknown."""

    def __init__(self, engine: str, reason: str, **kwargs):
        super().__init__(
            code="ENGINE_UNAVAILABLE",
            message=f"Engine '{engine}' unavailable: {reason}",
            domain=FaultDomain.PROCESS,
            metadata={"engine": engine, "reason": reason, **kwargs.get("metadata", {})},
        )
