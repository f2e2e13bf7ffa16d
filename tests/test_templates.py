import json

import pytest

from batch_generation_service.errors import TemplateNotFoundError
from batch_generation_service.jobs.templates import BUILT_IN_TEMPLATES, TemplateLibrary


def test_built_ins_are_listed_first(tmp_path):
    library = TemplateLibrary(tmp_path / "templates.json")
    ids = [template.id for template in library.list_templates()]
    assert ids == [template.id for template in BUILT_IN_TEMPLATES]
    assert all(template.is_built_in for template in library.built_in())


def test_save_and_delete_custom_template(tmp_path):
    library = TemplateLibrary(tmp_path / "templates.json")

    saved = library.save_custom_template(
        " Weekly quiz ", "Short quiz", "Biology", [{"name": "Warmup", "payload": {"difficulty": "easy"}}]
    )

    assert saved.id.startswith("custom_template_")
    assert saved.name == "Weekly quiz"
    assert not saved.is_built_in
    assert library.get_template(saved.id) == saved
    assert library.delete_custom_template(saved.id) is True
    assert library.delete_custom_template(saved.id) is False
    assert library.get_template(saved.id) is None


def test_built_in_templates_cannot_be_deleted(tmp_path):
    library = TemplateLibrary(tmp_path / "templates.json")
    assert library.delete_custom_template("template_exam_set") is False
    assert library.get_template("template_exam_set") is not None


def test_invalid_custom_entries_are_skipped(tmp_path, caplog):
    path = tmp_path / "templates.json"
    path.write_text(json.dumps([{"id": "custom_template_bad", "name": "No configs", "configs": []}, "junk"]))
    caplog.set_level("WARNING")

    assert TemplateLibrary(path).custom() == []
    assert any("Skipping invalid template" in record.message for record in caplog.records)


def test_instantiate_merges_payloads(tmp_path):
    library = TemplateLibrary(tmp_path / "templates.json")
    template = library.save_custom_template(
        "Chemistry",
        "",
        "Chemistry",
        [{"name": "Hard", "payload": {"difficulty": "hard"}}, {"name": "Default", "payload": {}}],
    )

    configs = library.instantiate(template.id, {"difficulty": "medium", "topic": "Acids"})

    assert [config.name for config in configs] == ["Hard", "Default"]
    assert configs[0].payload == {"subject": "Chemistry", "difficulty": "hard", "topic": "Acids"}
    assert configs[1].payload == {"subject": "Chemistry", "difficulty": "medium", "topic": "Acids"}
    assert configs[0].id != configs[1].id


def test_instantiate_unknown_template(tmp_path):
    with pytest.raises(TemplateNotFoundError):
        TemplateLibrary(tmp_path / "templates.json").instantiate("template_missing")
