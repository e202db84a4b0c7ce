"""Documentation gap analysis over a source tree.

Walks a folder, records allow-listed files, extracts import/export hints and
a complexity heuristic per source file, then turns what it found into
prioritized documentation recommendations.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .config import DEFAULT_FILE_EXTENSIONS
from .models import (
    Complexity,
    DependencyInfo,
    Gap,
    GapAnalysis,
    Priority,
    Recommendation,
    SourceFile,
)

logger = logging.getLogger(__name__)

JS_EXTENSIONS = frozenset({".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs"})
PY_EXTENSIONS = frozenset({".py"})
SOURCE_EXTENSIONS = JS_EXTENSIONS | PY_EXTENSIONS

TEST_DIRS = frozenset({"test", "tests", "__tests__", "spec", "specs"})
ALWAYS_SKIPPED_DIRS = frozenset({"__pycache__"})
ENTRY_POINT_STEMS = frozenset({"index", "main", "app", "server", "cli", "__main__"})
CONFIG_FILE_NAMES = frozenset({
    "package.json", "tsconfig.json", "pyproject.toml", "setup.cfg",
    "docker-compose.yml", "docker-compose.yaml", "babel.config.js",
})

COMPLEX_THRESHOLD = 50
MAX_EXPORTS = 3
MAX_IMPORTS = 5

_TEST_FILE_RE = re.compile(r"(^test_.*|.*_test\.[^.]+$|.*\.(test|spec)\.[^.]+$)", re.IGNORECASE)

# JavaScript / TypeScript
_JS_IMPORT_RE = re.compile(r"\bimport\s+(?:[^'\";]*?\s+from\s+)?['\"]([^'\"]+)['\"]")
_JS_DYNAMIC_IMPORT_RE = re.compile(r"\bimport\(\s*['\"]([^'\"]+)['\"]\s*\)")
_JS_REQUIRE_RE = re.compile(r"\brequire\(\s*['\"]([^'\"]+)['\"]\s*\)")
_JS_NAMED_EXPORT_RE = re.compile(
    r"\bexport\s+(?:default\s+)?(?:async\s+)?(?:function\*?|class|const|let|var)\s+([A-Za-z_$][\w$]*)"
)
_JS_DEFAULT_EXPORT_RE = re.compile(r"\bexport\s+default\s+(?!(?:async\s+)?(?:function|class)\s+[A-Za-z_$])")
_JS_EXPORT_LIST_RE = re.compile(r"\bexport\s*\{([^}]*)\}")
_JS_CJS_PROPERTY_RE = re.compile(r"\b(?:module\.)?exports\.([A-Za-z_$][\w$]*)\s*=")
_JS_CJS_OBJECT_RE = re.compile(r"\bmodule\.exports\s*=\s*\{([^}]*)\}")
_JS_CJS_VALUE_RE = re.compile(r"\bmodule\.exports\s*=\s*([A-Za-z_$][\w$]*)")

# Python
_PY_IMPORT_RE = re.compile(r"^[ \t]*import[ \t]+([^\n#]+)", re.MULTILINE)
_PY_FROM_RE = re.compile(r"^[ \t]*from[ \t]+(\.*[\w.]*)[ \t]+import\b", re.MULTILINE)
_PY_ALL_RE = re.compile(r"^__all__\s*=\s*[\[(]([^\])]*)[\])]", re.MULTILINE)
_PY_TOP_DEF_RE = re.compile(r"^(?:async[ \t]+)?def[ \t]+([A-Za-z]\w*)", re.MULTILINE)
_PY_TOP_CLASS_RE = re.compile(r"^class[ \t]+([A-Za-z]\w*)", re.MULTILINE)
_QUOTED_RE = re.compile(r"['\"]([^'\"]+)['\"]")

# Complexity metrics
_JS_FUNCTION_RE = re.compile(r"\bfunction\b|=>")
_PY_FUNCTION_RE = re.compile(r"^[ \t]*(?:async[ \t]+)?def[ \t]", re.MULTILINE)
_CLASS_RE = re.compile(r"\bclass\s+[A-Za-z_$]")
_JS_CONDITIONAL_RE = re.compile(r"\bif\s*\(|\bswitch\s*\(|\bcase\b")
_PY_CONDITIONAL_RE = re.compile(r"\bif\b|\belif\b")
_JS_LOOP_RE = re.compile(r"\bfor\s*\(|\bwhile\s*\(|\.forEach\(")
_PY_LOOP_RE = re.compile(r"^[ \t]*(?:async[ \t]+)?(?:for|while)\b", re.MULTILINE)


def _unique(items: list[str]) -> list[str]:
    seen = set()
    result = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            result.append(item)
    return result


def is_internal(module: str) -> bool:
    """Relative references are internal; everything else is external."""
    return module.startswith(".")


def _split_names(names: str) -> list[str]:
    found = []
    for part in names.split(","):
        tokens = part.split()
        if not tokens:
            continue
        # "a as b" exports b
        found.append(tokens[-1] if len(tokens) >= 3 and tokens[-2] == "as" else tokens[0])
    return found


def extract_js_dependencies(text: str) -> DependencyInfo:
    imports = _unique(
        _JS_IMPORT_RE.findall(text)
        + _JS_DYNAMIC_IMPORT_RE.findall(text)
        + _JS_REQUIRE_RE.findall(text)
    )
    exports = _JS_NAMED_EXPORT_RE.findall(text)
    if _JS_DEFAULT_EXPORT_RE.search(text):
        exports.append("default")
    for names in _JS_EXPORT_LIST_RE.findall(text):
        exports.extend(_split_names(names))
    exports.extend(_JS_CJS_PROPERTY_RE.findall(text))
    for body in _JS_CJS_OBJECT_RE.findall(text):
        exports.extend(part.split(":")[0].strip() for part in body.split(",") if part.strip())
    if not _JS_CJS_OBJECT_RE.search(text):
        exports.extend(_JS_CJS_VALUE_RE.findall(text))
    return _partition(imports, _unique(exports))


def extract_python_dependencies(text: str) -> DependencyInfo:
    imports = []
    for clause in _PY_IMPORT_RE.findall(text):
        for part in clause.split(","):
            tokens = part.split()
            if tokens:
                imports.append(tokens[0])
    imports.extend(_PY_FROM_RE.findall(text))

    all_match = _PY_ALL_RE.search(text)
    if all_match:
        exports = _QUOTED_RE.findall(all_match.group(1))
    else:
        exports = [
            name for name in _PY_TOP_DEF_RE.findall(text) + _PY_TOP_CLASS_RE.findall(text)
            if not name.startswith("_")
        ]
    return _partition(_unique(imports), _unique(exports))


def _partition(imports: list[str], exports: list[str]) -> DependencyInfo:
    return DependencyInfo(
        imports=imports,
        exports=exports,
        internal_deps=[m for m in imports if is_internal(m)],
        external_deps=[m for m in imports if not is_internal(m)],
    )


def extract_dependencies(text: str, extension: str) -> Optional[DependencyInfo]:
    """Dependency hints for recognised source files; None for anything else."""
    if extension in JS_EXTENSIONS:
        return extract_js_dependencies(text)
    if extension in PY_EXTENSIONS:
        return extract_python_dependencies(text)
    return None


def complexity_category(score: float) -> str:
    if score < 20:
        return "simple"
    if score < 50:
        return "moderate"
    if score < 80:
        return "complex"
    return "very complex"


def compute_complexity(text: str, extension: str) -> Complexity:
    """``min(100, lines/10 + functions*2 + classes*3 + (conditionals + loops)*1.5)``"""
    if extension in PY_EXTENSIONS:
        functions = len(_PY_FUNCTION_RE.findall(text))
        conditionals = len(_PY_CONDITIONAL_RE.findall(text))
        loops = len(_PY_LOOP_RE.findall(text))
    else:
        functions = len(_JS_FUNCTION_RE.findall(text))
        conditionals = len(_JS_CONDITIONAL_RE.findall(text))
        loops = len(_JS_LOOP_RE.findall(text))
    classes = len(_CLASS_RE.findall(text))
    lines = len(text.splitlines())

    raw = lines / 10 + functions * 2 + classes * 3 + conditionals * 1.5 + loops * 1.5
    score = round(min(100.0, raw), 1)
    return Complexity(
        score=score,
        lines=lines,
        functions=functions,
        classes=classes,
        conditionals=conditionals,
        loops=loops,
        category=complexity_category(score),
    )


def is_test_file(name: str) -> bool:
    return _TEST_FILE_RE.match(name) is not None


def is_entry_point(relative: Path) -> bool:
    """Conventional entry-point name at the root or one directory down."""
    return (
        relative.stem in ENTRY_POINT_STEMS
        and relative.suffix.lower() in SOURCE_EXTENSIONS
        and len(relative.parts) <= 2
    )


def is_config_file(name: str) -> bool:
    lowered = name.lower()
    return lowered in CONFIG_FILE_NAMES or "config" in lowered.rsplit(".", 1)[0]


def has_readme(root: Path) -> bool:
    try:
        return any(p.is_file() and p.name.lower().startswith("readme") for p in root.iterdir())
    except OSError:
        return False


@dataclass
class GapOptions:
    include_tests: bool = False
    include_node_modules: bool = False
    max_depth: int = 5
    file_extensions: list[str] = field(default_factory=lambda: list(DEFAULT_FILE_EXTENSIONS))

    def allowed_extensions(self) -> set[str]:
        return {
            (ext if ext.startswith(".") else f".{ext}").lower()
            for ext in self.file_extensions
        }


class DocumentationGapAnalyzer:
    """Scans a folder and recommends documentation work, most urgent first."""

    def __init__(self, options: Optional[GapOptions] = None):
        self.options = options or GapOptions()
        self._extensions = self.options.allowed_extensions()

    # ========== Walk ==========

    def _skip_directory(self, name: str) -> bool:
        if name in ALWAYS_SKIPPED_DIRS:
            return True
        if name == "node_modules" and not self.options.include_node_modules:
            return True
        if name.lower() in TEST_DIRS and not self.options.include_tests:
            return True
        return False

    def _visit(self, root: Path, directory: Path, depth: int, analysis: GapAnalysis) -> None:
        if depth > self.options.max_depth:
            return
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as e:
            logger.warning("Skipping unreadable directory %s: %s", directory, e)
            analysis.skipped_files.append(str(directory.relative_to(root)))
            return

        for entry in entries:
            if entry.name.startswith("."):
                continue
            if entry.is_dir():
                if not self._skip_directory(entry.name):
                    self._visit(root, entry, depth + 1, analysis)
                continue
            if entry.suffix.lower() not in self._extensions:
                continue
            if is_test_file(entry.name) and not self.options.include_tests:
                continue
            self._record(root, entry, analysis)

    def _record(self, root: Path, path: Path, analysis: GapAnalysis) -> None:
        relative = path.relative_to(root)
        extension = path.suffix.lower()
        try:
            size = path.stat().st_size
            text = path.read_text(encoding="utf-8") if extension in SOURCE_EXTENSIONS else None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Skipping %s: %s", path, e)
            analysis.skipped_files.append(relative.as_posix())
            return

        source = SourceFile(
            path=str(path),
            relative_path=relative.as_posix(),
            name=path.name,
            extension=extension,
            size_bytes=size,
            is_entry_point=is_entry_point(relative),
        )
        if text is not None:
            source.dependency_info = extract_dependencies(text, extension)
            source.complexity = compute_complexity(text, extension)
            analysis.dependency_map[source.relative_path] = source.dependency_info
            analysis.complexity_analysis[source.relative_path] = source.complexity
        analysis.file_structure.append(source)

    # ========== Gaps ==========

    def find_gaps(self, root: Path, files: list[SourceFile]) -> list[Gap]:
        gaps = []
        if not has_readme(root):
            gaps.append(Gap("missing_readme", Priority.HIGH, None, "No README at the project root"))

        for source in files:
            rel = source.relative_path
            if source.is_entry_point:
                gaps.append(Gap("entry_point", Priority.HIGH, rel, "Entry point without dedicated documentation"))
            if source.complexity is not None and source.complexity.score > COMPLEX_THRESHOLD:
                gaps.append(Gap(
                    "complex_file", Priority.MEDIUM, rel,
                    f"Complexity {source.complexity.score} ({source.complexity.category})",
                ))
            deps = source.dependency_info
            if deps is not None and (len(deps.exports) > MAX_EXPORTS or len(deps.imports) > MAX_IMPORTS):
                gaps.append(Gap(
                    "api_documentation", Priority.MEDIUM, rel,
                    f"{len(deps.exports)} exports, {len(deps.imports)} imports",
                ))
            if is_config_file(source.name):
                gaps.append(Gap("configuration", Priority.LOW, rel, "Configuration file"))
        return gaps

    @staticmethod
    def recommend(gaps: list[Gap]) -> list[Recommendation]:
        """One recommendation per gap, stably sorted HIGH, MEDIUM, LOW."""
        recommendations = []
        for gap in gaps:
            if gap.type == "missing_readme":
                action = "Create a README.md describing purpose, setup and usage"
                rationale = "The project root has no README"
            elif gap.type == "entry_point":
                action = f"Document entry point {gap.file}"
                rationale = "Readers start from entry points"
            elif gap.type == "complex_file":
                action = f"Add explanatory documentation for {gap.file}"
                rationale = gap.description
            elif gap.type == "api_documentation":
                action = f"Write API documentation for {gap.file}"
                rationale = gap.description
            else:
                action = f"Document configuration options in {gap.file}"
                rationale = "Configuration files need their options explained"
            recommendations.append(Recommendation(
                priority=gap.priority,
                type=gap.type,
                action=action,
                rationale=rationale,
                file=gap.file,
            ))
        return sorted(recommendations, key=lambda r: r.priority.rank)

    # ========== Entry point ==========

    def analyze(self, root: Path, project: str = "") -> GapAnalysis:
        """Analyze ``root``; a missing folder yields an empty analysis."""
        root = Path(root).expanduser()
        analysis = GapAnalysis(root=str(root), project=project)
        if not root.is_dir():
            logger.info("Gap analysis root %s does not exist", root)
            return analysis

        self._visit(root, root, 0, analysis)
        analysis.gaps = self.find_gaps(root, analysis.file_structure)
        analysis.recommendations = self.recommend(analysis.gaps)
        logger.debug(
            "Analyzed %d files under %s: %d recommendations",
            len(analysis.file_structure), root, len(analysis.recommendations),
        )
        return analysis
