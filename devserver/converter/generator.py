import logging
from pathlib import Path
from dataclasses import dataclass, asdict
from importlib import resources
from typing import Optional

from jinja2 import Environment, StrictUndefined, TemplateError

import devserver.settings as default_settings
from devserver.local.errors import GenerationError
from devserver.converter.utils.content import extract_code_blocks, fence_label_for, join_code_blocks


@dataclass(frozen=True)
class TemplateData:
    """The only values bound into the embedded server document."""
    port: str
    public_dir: str


def load_embedded_document(name: str = default_settings.SERVER_TEMPLATE_NAME) -> Optional[str]:
    """
    Reads a Markdown template shipped inside the package.

    :param name: The template file name under devserver/templates.
    :return str or None: The document, or None if it cannot be read.
    """
    try:
        return resources.files("devserver").joinpath("templates").joinpath(name).read_text(encoding="utf-8")
    except (FileNotFoundError, OSError):
        return None


class Generator:
    """
    Materializes the starter server file from the embedded Markdown template.

    The target file is created at most once: an existing file is never
    rewritten, whatever its content, size or permissions.
    """

    def __init__(
        self,
        target_path: Path,
        data: TemplateData,
        logger: Optional[logging.Logger] = None,
        document: Optional[str] = None,
        label: Optional[str] = None,
    ) -> None:
        self.target_path = Path(target_path)
        self.data = data
        self.log = logger or logging.getLogger("devserver.generator")
        self._document = document
        self.label = label or fence_label_for(self.target_path.name)

    def _load_document(self) -> str:
        if self._document is not None:
            return self._document
        document = load_embedded_document()
        if document is None:
            self.log.warning("Embedded server template could not be read, generating from empty content.")
            return ""
        return document

    def process_template(self, document: str) -> str:
        """
        Substitutes the template data into the document.

        Parsing or substitution failures are logged and the unprocessed
        document is returned instead.
        """
        env = Environment(undefined=StrictUndefined, keep_trailing_newline=True)
        try:
            template = env.from_string(document)
        except TemplateError as e:
            self.log.error(f"Template parsing error (using unprocessed document): {e}")
            return document
        try:
            return template.render(**asdict(self.data))
        except TemplateError as e:
            self.log.error(f"Template execution error (using unprocessed document): {e}")
            return document

    def generate(self) -> None:
        """
        Writes the extracted server code to the target path if it is absent.

        :raises GenerationError: If the file cannot be written.
        """
        if self.target_path.exists():
            self.log.info(f"Server file already exists at {self.target_path}, skipping generation")
            return

        processed = self.process_template(self._load_document())
        blocks = extract_code_blocks(processed, self.label)
        if not blocks:
            self.log.warning(f"No '{self.label}' code blocks found in the server template, writing an empty file.")

        try:
            self.target_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise GenerationError(f"could not create {self.target_path.parent}: {e}") from e

        try:
            # Exclusive creation: a file that appeared meanwhile is left untouched.
            with self.target_path.open("x", encoding="utf-8") as f:
                f.write(join_code_blocks(blocks))
        except FileExistsError:
            self.log.info(f"Server file already exists at {self.target_path}, skipping generation")
            return
        except OSError as e:
            raise GenerationError(f"could not write {self.target_path}: {e}") from e

        self.log.info(f"Generated server file at {self.target_path}")
