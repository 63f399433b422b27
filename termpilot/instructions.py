"""System prompt templates.

The package ships its templates under ``prompts/``. A file of the same name
in ``~/.termpilot/instructions/`` replaces the shipped one.
"""

from pathlib import Path

PACKAGED_DIR = Path(__file__).resolve().parent / "prompts"
PERSONAL_DIR = Path("~/.termpilot/instructions").expanduser()


class _KeepUnknown(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class InstructionLoader:
    """Locate and fill prompt templates, preferring the personal copy."""

    def __init__(self, base_dir: Path | str | None = None, personal_dir: Path | str | None = None):
        self.base_dir = Path(base_dir).expanduser() if base_dir is not None else PACKAGED_DIR
        self.personal_dir = Path(personal_dir).expanduser() if personal_dir is not None else PERSONAL_DIR

    def template_path(self, name: str) -> Path:
        personal = self.personal_dir / name
        if personal.is_file():
            return personal
        return self.base_dir / name

    def render(self, name: str, **variables: object) -> str:
        """Fill ``{placeholder}`` fields; unknown placeholders stay as written.

        Raises:
            FileNotFoundError: neither directory has the template
        """
        path = self.template_path(name)
        if not path.is_file():
            raise FileNotFoundError(f"Instruction template not found: {path}")
        template = path.read_text(encoding="utf-8").strip()
        return template.format_map(_KeepUnknown({key: str(value) for key, value in variables.items()}))
