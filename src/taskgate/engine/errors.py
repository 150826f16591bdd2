"""TaskGate engine errors."""


class TaskGateError(Exception):
    """Base error for TaskGate operations."""

    retryable = False

    def __init__(self, message: str, code: str = "TASKGATE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


# Validation ------------------------------------------------------------------


class ValidationError(TaskGateError):
    """Caller input is at fault; nothing was mutated."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        super().__init__(message, code)


class InvalidStage(ValidationError):
    def __init__(self, value: object):
        super().__init__(f"Invalid stage value: {value!r}", "INVALID_STAGE")
        self.value = value


class InvalidStatus(ValidationError):
    def __init__(self, value: object):
        super().__init__(f"Invalid status value: {value!r}", "INVALID_STATUS")
        self.value = value


class IllegalTransition(ValidationError):
    """Requested stage or status change is not allowed from the current state."""

    def __init__(self, current: str, requested: str, reason: str | None = None):
        message = f"Illegal transition from {current} to {requested}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, "ILLEGAL_TRANSITION")
        self.current = current
        self.requested = requested


class InvalidAssignees(ValidationError):
    def __init__(self, message: str):
        super().__init__(message, "INVALID_ASSIGNEES")


# Authorization ---------------------------------------------------------------


class NotAuthorized(TaskGateError):
    """Operation not authorized for this actor."""

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, "NOT_AUTHORIZED")


# Not found -------------------------------------------------------------------


class TaskNotFound(TaskGateError):
    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}", "TASK_NOT_FOUND")
        self.task_id = task_id


class ActorNotFound(TaskGateError):
    def __init__(self, actor_id: str):
        super().__init__(f"Actor not found: {actor_id}", "ACTOR_NOT_FOUND")
        self.actor_id = actor_id


class AssignmentNotFound(TaskGateError):
    def __init__(self, task_id: str, assignee_id: str):
        super().__init__(
            f"Actor {assignee_id} is not assigned to task {task_id}",
            "ASSIGNMENT_NOT_FOUND",
        )
        self.task_id = task_id
        self.assignee_id = assignee_id


# Capability tokens -----------------------------------------------------------


class TokenError(TaskGateError):
    """Base for capability token failures. None of these mutate task state."""


class TokenInvalid(TokenError):
    def __init__(self, reason: str = "Invalid approval token"):
        super().__init__(reason, "TOKEN_INVALID")


class TokenExpired(TokenError):
    def __init__(self):
        super().__init__("Approval token has expired", "TOKEN_EXPIRED")


class TokenAlreadyUsed(TokenError):
    def __init__(self):
        super().__init__("Approval token has already been used", "TOKEN_ALREADY_USED")


class TokenScopeMismatch(TokenError):
    def __init__(self, token_flow: str, requested_flow: str):
        super().__init__(
            f"Token authorizes the {token_flow} approval flow, not {requested_flow}",
            "TOKEN_SCOPE_MISMATCH",
        )
        self.token_flow = token_flow
        self.requested_flow = requested_flow


# Conflicts -------------------------------------------------------------------


class AlreadyFinalized(TaskGateError):
    """Task approval is terminal and cannot be changed."""

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} is already approved", "ALREADY_FINALIZED")
        self.task_id = task_id


class VersionConflict(TaskGateError):
    """Task changed between read and write."""

    retryable = True

    def __init__(self, task_id: str, expected_version: int):
        super().__init__(
            f"Task {task_id} was modified concurrently (expected version {expected_version})",
            "VERSION_CONFLICT",
        )
        self.task_id = task_id
        self.expected_version = expected_version


class ConcurrentUpdateError(TaskGateError):
    """Retries against fresh state were exhausted."""

    retryable = True

    def __init__(self, task_id: str, attempts: int):
        super().__init__(
            f"Task {task_id} could not be updated after {attempts} attempts",
            "CONCURRENT_UPDATE",
        )
        self.task_id = task_id
        self.attempts = attempts


# Collaborators ---------------------------------------------------------------


class PersistenceUnavailable(TaskGateError):
    """Persistence collaborator failed; the operation was aborted."""

    retryable = True

    def __init__(self, message: str = "Persistence unavailable"):
        super().__init__(message, "PERSISTENCE_UNAVAILABLE")
