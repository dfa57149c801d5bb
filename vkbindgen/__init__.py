"""Generate ctypes Vulkan bindings from the Khronos vk.xml registry."""

from .emitter import GeneratedBindings, emit_bindings
from .errors import (
    ConfigError,
    CyclicTypeDependency,
    DanglingReference,
    EmissionFailure,
    GeneratorError,
    MalformedRegistry,
)
from .filtering import filter_registry
from .parser import load_registry, parse_registry
from .pipeline import run_generate
from .resolver import resolve

__version__ = "0.1.0"
