"""
Instrumentation Configuration Store.

Settings resolve in three layers: field defaults, the `[tool.prodcov]` table of
the nearest `pyproject.toml`, and explicit overrides (CLI flags or API arguments).
"""

import re
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

if sys.version_info >= (3, 11):
  import tomllib
else:
  import tomli as tomllib

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class InstrumentationConfig(BaseModel):
  """
  Configuration of the coverage instrumentation pass.

  The three hook fields describe the runtime entry point that every injected
  call targets: ``<hook_namespace>.<hook_instance>.<hook_method>(id, line)``.
  """

  model_config = ConfigDict(frozen=True)

  hook_file_name: str = Field(
    "instrument_code.py",
    description="Suffix identifying the source file that defines the runtime hook.",
  )
  hook_namespace: str = Field(
    "instrument_code",
    description="(Dotted) name under which the hook module is reachable from instrumented code.",
  )
  hook_instance: str = Field("instrument_code_instance", description="Attribute holding the hook instance.")
  hook_method: str = Field("instrument_code", description="Method invoked on the hook instance.")
  anonymous_name: str = Field("Anonymous", description="Name recorded for functions without a binding.")
  instrument_lambdas: bool = Field(True, description="If True, lambda expressions are instrumented as well.")
  inject_hook_import: bool = Field(
    True,
    description="If True, `import <hook_namespace>` is added to every file that received a call.",
  )

  @field_validator("hook_namespace")
  @classmethod
  def validate_namespace(cls, v: str) -> str:
    """
    Ensures the namespace is a dotted Python identifier.

    Raises:
        ValueError: If any segment is not a valid identifier.
    """
    v_clean = v.strip()
    if not all(_IDENTIFIER_RE.match(part) for part in v_clean.split(".")):
      raise ValueError(f"Invalid hook namespace: '{v}'. Expected a dotted Python identifier.")
    return v_clean

  @field_validator("hook_instance", "hook_method")
  @classmethod
  def validate_identifier(cls, v: str) -> str:
    v_clean = v.strip()
    if not _IDENTIFIER_RE.match(v_clean):
      raise ValueError(f"Invalid hook identifier: '{v}'.")
    return v_clean

  @field_validator("hook_file_name", "anonymous_name")
  @classmethod
  def validate_not_empty(cls, v: str) -> str:
    if not v:
      raise ValueError("Value must not be empty.")
    return v

  @property
  def hook_path(self) -> str:
    """Fully dotted path of the hook method."""
    return f"{self.hook_namespace}.{self.hook_instance}.{self.hook_method}"

  @classmethod
  def load(cls, search_path: Optional[Path] = None, **overrides: Any) -> "InstrumentationConfig":
    """
    Loads configuration from pyproject.toml and applies overrides.

    Args:
        search_path (Optional[Path]): Directory to start searching for TOML config.
            Defaults to the current working directory.
        **overrides: Field values taking precedence over the TOML table.
            `None` values are ignored so unset CLI flags fall through.

    Returns:
        InstrumentationConfig: The resolved configuration.
    """
    toml_config, _ = _load_toml_settings(search_path or Path.cwd())
    known = set(cls.model_fields)
    values = {k: v for k, v in toml_config.items() if k in known}
    values.update({k: v for k, v in overrides.items() if v is not None})
    return cls(**values)


def _load_toml_settings(start_path: Path) -> Tuple[Dict[str, Any], Optional[Path]]:
  """
  Searches `start_path` and its parents for 'pyproject.toml'.

  Returns:
      Tuple[Dict, Optional[Path]]: The `[tool.prodcov]` table (empty if missing)
      and the directory it was found in.
  """
  current = start_path.resolve()

  for parent in [current, *current.parents]:
    toml_path = parent / "pyproject.toml"
    if toml_path.is_file():
      with open(toml_path, "rb") as f:
        data = tomllib.load(f)
      return data.get("tool", {}).get("prodcov", {}), parent

  return {}, None
