"""
Document loading - pipeline documents from text, files, and a library.

parse_document() turns YAML (or JSON, which is a YAML subset) text into the
nested mapping/list structure the translator consumes. SpecLibrary loads
documents by id from a definitions directory:

- <id>.yaml / <id>.yml / <id>.json, searched recursively
- YAML files are preferred over JSON when both exist
- translated PipelineSpecs are cached
- content-addressable lookup via SHA256 of the canonical JSON form
"""

import hashlib
import json
from pathlib import Path
from typing import Any, Optional

import yaml

from phasework.errors import PhaseworkError, TranslationError
from phasework.schemas import PipelineSpec
from phasework.translator import translate

DOCUMENT_SUFFIXES = (".yaml", ".yml", ".json")


class DocumentError(TranslationError):
    """Raised when document text cannot be parsed at all."""
    pass


class SpecNotFoundError(PhaseworkError):
    """Raised when a pipeline document is not found in the library."""
    pass


def parse_document(text: str, source: str = "<string>") -> Any:
    """
    Parse pipeline document text.

    Args:
        text: YAML or JSON text
        source: Name used in error messages

    Returns:
        Nested mapping/list structure

    Raises:
        DocumentError: If the text is not valid YAML
    """
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DocumentError(f"Invalid YAML syntax in {source}: {e}")


def load_document(path: Path | str) -> Any:
    """
    Load a pipeline document from a file.

    Raises:
        DocumentError: If the file format is unsupported or parsing fails
        FileNotFoundError: If the file does not exist
    """
    path = Path(path)
    suffix = path.suffix.lower()
    text = path.read_text()

    if suffix == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise DocumentError(f"Invalid JSON in {path}: {e}")
    elif suffix in (".yaml", ".yml"):
        return parse_document(text, source=str(path))
    else:
        raise DocumentError(f"Unsupported file format: {suffix}")


def compute_hash(spec: PipelineSpec) -> str:
    """
    Compute SHA256 hash of a PipelineSpec for content addressing.

    Uses canonical JSON serialization (sorted keys, no whitespace)
    to ensure consistent hashing.
    """
    canonical = json.dumps(spec.to_dict(), sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


class SpecLibrary:
    """
    Library of pipeline documents in a definitions directory.

    Example directory structure:
        definitions/
            nightly.yaml
            release/
                publish.yaml
                verify.json
    """

    def __init__(self, definitions_dir: Path | str):
        self._definitions_dir = Path(definitions_dir)
        self._cache: dict[str, PipelineSpec] = {}
        self._hash_index: dict[str, str] = {}  # sha256 -> spec id

    @property
    def definitions_dir(self) -> Path:
        return self._definitions_dir

    def find(self, spec_id: str) -> Optional[Path]:
        """
        Find the document file for an id.

        Searches the definitions directory recursively, root first.
        YAML files are preferred over JSON.
        """
        for ext in DOCUMENT_SUFFIXES:
            filename = f"{spec_id}{ext}"

            root_path = self._definitions_dir / filename
            if root_path.exists():
                return root_path

            matches = sorted(self._definitions_dir.glob(f"**/{filename}"))
            if matches:
                return matches[0]

        return None

    def load_raw(self, spec_id: str) -> Any:
        """
        Load the raw document for an id, without translating it.

        Raises:
            SpecNotFoundError: If no document exists for the id
        """
        path = self.find(spec_id)
        if path is None:
            raise SpecNotFoundError(f"Pipeline document not found: {spec_id}")
        return load_document(path)

    def load(self, spec_id: str) -> PipelineSpec:
        """
        Load and translate a document by id. Results are cached.

        Raises:
            SpecNotFoundError: If no document exists for the id
            TranslationError: If the document is invalid
        """
        if spec_id in self._cache:
            return self._cache[spec_id]

        spec = translate(self.load_raw(spec_id))

        self._cache[spec_id] = spec
        self._hash_index[compute_hash(spec)] = spec_id
        return spec

    def load_by_hash(self, sha256: str) -> Optional[PipelineSpec]:
        """Get a previously loaded spec by its content hash."""
        spec_id = self._hash_index.get(sha256)
        if spec_id is None:
            return None
        return self._cache.get(spec_id)

    def list_specs(self) -> list[str]:
        """
        List all available document ids.

        Returns:
            Sorted list of ids found in the definitions directory
        """
        if not self._definitions_dir.exists():
            return []

        spec_ids = set()
        for ext in DOCUMENT_SUFFIXES:
            for f in self._definitions_dir.glob(f"**/*{ext}"):
                spec_ids.add(f.stem)
        return sorted(spec_ids)

    def clear_cache(self) -> None:
        self._cache.clear()
        self._hash_index.clear()
