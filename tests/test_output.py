from __future__ import annotations

import json
from pathlib import Path

from shared.console import ClasspyConsole
from shared.logger import ClasspyLogger

from classpy.core.engine import InspectorEngine
from classpy.core.models import ComponentView, InspectionResult
from classpy.output.console import TreeConsoleOutput, build_tree, component_label
from classpy.output.report import ReportGenerator
from classpy.parsers.classfile import decode_class

from builders import hello_class


def _result(tmp_path: Path, data: bytes) -> InspectionResult:
    path = tmp_path / "Hello.class"
    path.write_bytes(data)
    engine = InspectorEngine(logger=ClasspyLogger("test.output", console_output=False))
    return engine.inspect(path)


def test_component_view_depth() -> None:
    root = decode_class(hello_class())
    view = ComponentView.from_component(root, max_depth=1)
    assert view.name == "class_file"
    assert len(view.children) == len(root.children)
    pool = next(c for c in view.children if c.name == "constant_pool")
    assert pool.children == []
    assert pool.truncated
    full = ComponentView.from_component(root)
    assert not any(c.truncated for c in full.children)


def test_label() -> None:
    root = decode_class(hello_class())
    assert component_label(root) == (
        f"[classpy.name]class_file[/classpy.name] "
        f"[classpy.desc]Hello[/classpy.desc] "
        f"[classpy.range]@0x0+{root.length}[/classpy.range]"
    )
    assert component_label(root["magic"], show_offsets=False).endswith(
        "[classpy.desc]0xCAFEBABE[/classpy.desc]"
    )


def test_build_tree_collapses_below_depth() -> None:
    root = decode_class(hello_class())
    tree = build_tree(root, max_depth=0)
    assert len(tree.children) == 1
    assert "more" in str(tree.children[0].label)


def test_console_display(tmp_path: Path) -> None:
    console = ClasspyConsole(record=True)
    TreeConsoleOutput(console).display(_result(tmp_path, hello_class()), max_depth=2)
    text = console.export_text()
    assert "Artifact" in text
    assert "class_file" in text
    assert "constant_pool" in text


def test_console_display_failure(tmp_path: Path) -> None:
    console = ClasspyConsole(record=True)
    TreeConsoleOutput(console).display(_result(tmp_path, hello_class()[:20]))
    text = console.export_text()
    assert "UnexpectedEndOfBuffer" in text
    assert "Component Tree" not in text


def test_json_report(tmp_path: Path) -> None:
    result = _result(tmp_path, hello_class())
    out = ReportGenerator().generate_json(result, str(tmp_path / "out" / "report.json"))
    doc = json.loads(Path(out).read_text(encoding="utf-8"))
    assert doc["report_type"] == "classpy_inspection"
    assert doc["inspection"]["info"]["format"] == "class"
    assert doc["inspection"]["failure"] is None
    assert "root" not in doc["inspection"]
    assert doc["tree"]["name"] == "class_file"
    assert doc["tree"]["description"] == "Hello"


def test_json_report_for_failure(tmp_path: Path) -> None:
    result = _result(tmp_path, hello_class()[:20])
    doc = ReportGenerator().to_dict(result)
    assert doc["tree"] is None
    assert doc["inspection"]["failure"]["kind"] == "UnexpectedEndOfBuffer"
