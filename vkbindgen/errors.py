"""Error taxonomy for a generation run.

Every error is fatal to the run that raised it. Each carries a stable `code`
so the CLI can report it uniformly.
"""

from collections.abc import Iterable


class GeneratorError(Exception):
    code = "GENERATOR_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MalformedRegistry(GeneratorError):
    """The registry document violates the expected schema.

    Attributes:
        element: Short description of the offending element, e.g.
            "member 'pNext' of VkFooCreateInfo".
        location: Document path of the element, e.g.
            "registry/types/type[@name='VkFooCreateInfo']", with a
            ":line:column" suffix when the XML itself failed to parse.
        reason: What is wrong with it.
    """

    code = "MALFORMED_REGISTRY"

    def __init__(self, element: str, location: str, reason: str):
        super().__init__(f"{reason}: {element} at {location}")
        self.element = element
        self.location = location
        self.reason = reason


class CyclicTypeDependency(GeneratorError):
    code = "CYCLIC_TYPE_DEPENDENCY"

    def __init__(self, members: Iterable[str]):
        self.members = tuple(members)
        super().__init__(
            "Dependency cycle between types: " + " -> ".join(self.members)
        )


class DanglingReference(GeneratorError):
    """A kept entity references something the filter removed."""

    code = "DANGLING_REFERENCE"

    def __init__(self, name: str, referrer: str):
        super().__init__(f"{referrer} references removed entity {name}")
        self.name = name
        self.referrer = referrer


class EmissionFailure(GeneratorError):
    code = "EMISSION_FAILURE"

    def __init__(self, path: object, reason: str):
        super().__init__(f"Failed to emit {path}: {reason}")
        self.path = path
        self.reason = reason


VALID_ERROR_CODES = {
    "INVALID_VERSION",
    "INVALID_API",
    "INVALID_EXTENSION_NAME",
    "INVALID_PLATFORM_NAME",
    "CONFLICT_EXT_FLAGS",
    "PATH_NOT_FOUND",
}


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
