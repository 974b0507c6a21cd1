import importlib
from collections.abc import Callable, Sequence
from typing import Any


def make_lazy_getattr(
    module_globals: dict[str, Any],
    mapping: dict[str, tuple[str, str]],
    extras: Sequence[str] | None = None,
) -> tuple[Callable[[str], Any], Callable[[], list[str]], tuple[str, ...]]:
    """Module-level ``__getattr__``, ``__dir__`` and ``__all__`` (PEP 562) for a package ``__init__``.

    ``mapping`` maps each exported name to ``(module, attribute)``. The module
    is imported on first attribute access and the value cached in
    ``module_globals``. ``extras`` are names the package defines eagerly.
    """
    package = module_globals.get("__name__", "<module>")
    exported = tuple(sorted({*mapping, *(extras or ())}))

    def __getattr__(name: str) -> Any:
        if name not in mapping:
            raise AttributeError(f"module '{package}' has no attribute '{name}'")
        mod_name, attr = mapping[name]
        try:
            value = getattr(importlib.import_module(mod_name), attr)
        except (ImportError, AttributeError) as e:
            raise AttributeError(f"{package}.{name}: cannot load '{attr}' from '{mod_name}': {e}") from e
        module_globals[name] = value
        return value

    def __dir__() -> list[str]:
        return sorted({*module_globals, *exported})

    return __getattr__, __dir__, exported
