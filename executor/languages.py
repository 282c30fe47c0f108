"""Language registry and shell command builder.

Single source of truth for supported languages. Each entry carries display
metadata plus a data-only command template; one pure function renders every
template into a single `sh -c` command line that:

1. Copies the source from the read-only input mount into the working directory
2. Installs dependencies (only when the language supports them and some were given)
3. Compiles (only for compiled languages)
4. Runs the program

Mount contract:
    <input_path>/<source_file_name>  user code, read-only
    working directory                writable (build artifacts, node_modules, ...)
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

from executor.core.errors import UnknownLanguageError
from executor.core.models import LanguageInfo

DEFAULT_INPUT_PATH = "/input"

_DEPENDENCY_SEPARATORS = re.compile(r"[\s,]+")


@dataclass(frozen=True)
class LanguageSpec:
    """Immutable description of one supported language.

    The *_template fields are private to the command builder and never leave
    the registry; list() only exposes LanguageInfo.

    Templates use {source} for the source file name and {packages} for the
    rendered dependency list.
    """

    id: str
    label: str
    source_file_name: str
    run_template: str
    supports_dependencies: bool = False
    dependency_field_label: str | None = None
    dependency_placeholder: str | None = None
    editor_language: str | None = None
    install_template: str | None = None
    quote_dependencies: bool = False
    compile_template: str | None = None

    def build_command(self, dependencies: Sequence[str] = (), input_path: str = DEFAULT_INPUT_PATH) -> str:
        return build_command(self, dependencies, input_path)

    def info(self) -> LanguageInfo:
        """Public metadata for this language."""
        return LanguageInfo(
            id=self.id,
            label=self.label,
            supports_dependencies=self.supports_dependencies,
            dependency_field_label=self.dependency_field_label,
            dependency_placeholder=self.dependency_placeholder,
            editor_language=self.editor_language,
        )


def build_command(spec: LanguageSpec, dependencies: Sequence[str] = (), input_path: str = DEFAULT_INPUT_PATH) -> str:
    """Render the copy/install/compile/run pipeline for a language.

    An empty dependency list produces no install stage at all rather than an
    install command with zero arguments. Languages without dependency support
    ignore the list.

    Args:
        spec: Registry entry to render
        dependencies: Already tokenized package names
        input_path: In-container path of the read-only source mount

    Returns:
        One shell command line with stages joined by " && "
    """
    source = spec.source_file_name
    stages = [f"cp {input_path.rstrip('/')}/{source} ."]

    packages = [dep for dep in dependencies if dep]
    if spec.install_template is not None and spec.supports_dependencies and packages:
        if spec.quote_dependencies:
            rendered = " ".join(f'"{dep}"' for dep in packages)
        else:
            rendered = " ".join(packages)
        stages.append(spec.install_template.format(packages=rendered))

    if spec.compile_template is not None:
        stages.append(spec.compile_template.format(source=source))

    stages.append(spec.run_template.format(source=source))
    return " && ".join(stages)


def parse_dependencies(raw: str | None) -> list[str]:
    """Split free-form dependency text on whitespace/comma runs.

    >>> parse_dependencies(" a, b  c ,")
    ['a', 'b', 'c']
    >>> parse_dependencies("")
    []
    """
    if not raw:
        return []
    return [token for token in _DEPENDENCY_SEPARATORS.split(raw) if token]


def normalize_dependencies(dependencies: str | Sequence[str] | None) -> list[str]:
    """Accept raw text or an already split sequence and return clean tokens."""
    if dependencies is None:
        return []
    if isinstance(dependencies, str):
        return parse_dependencies(dependencies)
    tokens: list[str] = []
    for item in dependencies:
        tokens.extend(parse_dependencies(item))
    return tokens


LANGUAGES: tuple[LanguageSpec, ...] = (
    LanguageSpec(
        id="python",
        label="Python",
        source_file_name="script.py",
        editor_language="python",
        supports_dependencies=True,
        dependency_field_label="pip packages",
        dependency_placeholder="e.g. requests langchain numpy",
        install_template="pip install --quiet {packages}",
        quote_dependencies=True,
        run_template="python {source}",
    ),
    LanguageSpec(
        id="javascript",
        label="JavaScript",
        source_file_name="script.js",
        editor_language="javascript",
        supports_dependencies=True,
        dependency_field_label="npm packages",
        dependency_placeholder="e.g. axios lodash dayjs",
        install_template="npm install --silent {packages}",
        run_template="node {source}",
    ),
    LanguageSpec(
        id="go",
        label="Go",
        source_file_name="script.go",
        editor_language="go",
        # stdlib only: `go run` compiles implicitly without a go.mod
        run_template="go run {source}",
    ),
    LanguageSpec(
        id="ruby",
        label="Ruby",
        source_file_name="script.rb",
        editor_language="ruby",
        supports_dependencies=True,
        dependency_field_label="gems",
        dependency_placeholder="e.g. httparty nokogiri",
        install_template="gem install --silent {packages}",
        run_template="ruby {source}",
    ),
    LanguageSpec(
        id="java",
        label="Java",
        # javac requires the public class to be named after the file
        source_file_name="Main.java",
        editor_language="java",
        compile_template="javac {source}",
        run_template="java Main",
    ),
    LanguageSpec(
        id="c",
        label="C",
        source_file_name="script.c",
        editor_language="c",
        compile_template="gcc {source} -o prog -lm",
        run_template="./prog",
    ),
    LanguageSpec(
        id="cpp",
        label="C++",
        source_file_name="script.cpp",
        editor_language="cpp",
        compile_template="g++ {source} -o prog -lm",
        run_template="./prog",
    ),
)


class LanguageRegistry:
    """Read-only lookup of LanguageSpec entries by id, in declaration order."""

    def __init__(self, languages: Iterable[LanguageSpec] = LANGUAGES) -> None:
        self._languages: dict[str, LanguageSpec] = {}
        for spec in languages:
            if spec.id in self._languages:
                raise ValueError(f"Duplicate language id: {spec.id}")
            self._languages[spec.id] = spec

    def get(self, language_id: str) -> LanguageSpec | None:
        return self._languages.get(language_id)

    def require(self, language_id: str) -> LanguageSpec:
        """Return the entry for language_id or raise UnknownLanguageError."""
        spec = self._languages.get(language_id)
        if spec is None:
            raise UnknownLanguageError(language_id)
        return spec

    def list(self) -> list[LanguageInfo]:
        return [spec.info() for spec in self._languages.values()]

    def ids(self) -> list[str]:
        return list(self._languages)

    def __contains__(self, language_id: object) -> bool:
        return language_id in self._languages

    def __iter__(self) -> Iterator[LanguageSpec]:
        return iter(self._languages.values())

    def __len__(self) -> int:
        return len(self._languages)


default_registry = LanguageRegistry()
