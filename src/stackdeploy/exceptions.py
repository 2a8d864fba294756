# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Error types raised by the stack engine.

Every error carries a machine readable ``code``, an HTTP-style
``status_code`` for callers that expose the engine over an API, a
``details`` dictionary and a list of remediation ``suggestions``.
"""
from typing import Any, Dict, List, Optional


class StackError(Exception):
    """Base class for all stack engine errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form, as returned to API clients."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "suggestions": self.suggestions,
        }


class ValidationError(StackError):
    """Bad stack name or stack document. Raised before any platform call."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(StackError):
    """No platform resource carries the requested stack's project label."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, identifier: str, suggestions: Optional[List[str]] = None):
        super().__init__(
            f"{resource} not found: {identifier}",
            details={"resource": resource, "identifier": identifier},
            suggestions=suggestions,
        )
        self.resource = resource
        self.identifier = identifier


class ConflictError(StackError):
    """Another operation currently holds the stack's lease."""

    code = "CONFLICT"
    status_code = 409


class PlatformError(StackError):
    """
    Wraps a failed call against the container platform.

    ``platform_status`` is the HTTP status the engine answered with, when
    there was one (409 for conflicts, 304 for "not modified", ...).
    """

    code = "DOCKER_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        platform_status: Optional[int] = None,
        cause: Optional[BaseException] = None,
        suggestions: Optional[List[str]] = None,
    ):
        details: Dict[str, Any] = {}
        if platform_status is not None:
            details["platform_status"] = platform_status
        if cause is not None:
            details["original_error"] = str(cause)
        super().__init__(message, details=details, suggestions=suggestions)
        self.platform_status = platform_status
        self.cause = cause

    @property
    def is_conflict(self) -> bool:
        return self.platform_status == 409

    @property
    def is_not_modified(self) -> bool:
        return self.platform_status == 304

    @property
    def is_not_found(self) -> bool:
        return self.platform_status == 404


class PlatformTimeoutError(PlatformError):
    """A platform call did not answer within the configured timeout."""

    code = "DOCKER_TIMEOUT"
    status_code = 504


class ContainerStartError(PlatformError):
    """The container was created but could not be started."""

    def __init__(self, container_id: str, container_name: str, cause: PlatformError):
        super().__init__(
            f"Failed to start container {container_name}: {cause.message}",
            platform_status=cause.platform_status,
            cause=cause,
        )
        self.container_id = container_id
        self.container_name = container_name
