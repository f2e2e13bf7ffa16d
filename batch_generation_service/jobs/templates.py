"""Reusable batch templates: built-in presets plus user-saved ones."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from ..errors import TemplateNotFoundError
from ..storage import JsonDocument
from .models import JobConfig

logger = logging.getLogger(__name__)


class TemplateConfig(BaseModel):
    name: str = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)


class BatchTemplate(BaseModel):
    id: str
    name: str = Field(..., min_length=1)
    description: str = ""
    subject: Optional[str] = None
    configs: List[TemplateConfig] = Field(..., min_length=1)
    is_built_in: bool = False


def _preset(name: str, difficulty: str, question_types: List[str], question_count: int) -> TemplateConfig:
    return TemplateConfig(
        name=name,
        payload={"difficulty": difficulty, "question_types": question_types, "question_count": question_count},
    )


BUILT_IN_TEMPLATES: List[BatchTemplate] = [
    BatchTemplate(
        id="template_difficulty_progression",
        name="Same topic, three difficulties",
        description="Questions on one topic at easy, medium and hard levels",
        configs=[
            _preset("Easy", "easy", ["multiple_choice"], 2),
            _preset("Medium", "medium", ["multiple_choice", "true_false"], 3),
            _preset("Hard", "hard", ["essay", "multiple_choice"], 2),
        ],
        is_built_in=True,
    ),
    BatchTemplate(
        id="template_question_types",
        name="Mixed question types",
        description="Several question types for the same topic",
        configs=[
            _preset("Multiple choice", "medium", ["multiple_choice"], 4),
            _preset("True/False", "medium", ["true_false"], 3),
            _preset("Essay", "medium", ["essay"], 2),
            _preset("Fill in the blank", "medium", ["fill_in_blank"], 3),
        ],
        is_built_in=True,
    ),
    BatchTemplate(
        id="template_exam_set",
        name="Complete exam set",
        description="An exam made of several sections",
        configs=[
            _preset("Part 1: Multiple choice", "medium", ["multiple_choice"], 4),
            _preset("Part 2: True/False", "easy", ["true_false"], 3),
            _preset("Part 3: Essay", "hard", ["essay"], 2),
        ],
        is_built_in=True,
    ),
]


class TemplateLibrary:
    """Built-in templates plus custom ones persisted as a JSON list."""

    def __init__(self, path: Path) -> None:
        self.document = JsonDocument(path, default=list)

    def built_in(self) -> List[BatchTemplate]:
        return [template.model_copy(deep=True) for template in BUILT_IN_TEMPLATES]

    def custom(self) -> List[BatchTemplate]:
        templates: List[BatchTemplate] = []
        for raw in self.document.read():
            try:
                template = BatchTemplate.model_validate(raw)
            except ValidationError:
                template_id = raw.get("id") if isinstance(raw, dict) else None
                logger.warning("Skipping invalid template", extra={"template_id": template_id})
                continue
            if not template.is_built_in:
                templates.append(template)
        return templates

    def list_templates(self) -> List[BatchTemplate]:
        return self.built_in() + self.custom()

    def get_template(self, template_id: str) -> Optional[BatchTemplate]:
        return next((template for template in self.list_templates() if template.id == template_id), None)

    def save_custom_template(
        self,
        name: str,
        description: str,
        subject: Optional[str],
        configs: Iterable[Union[TemplateConfig, Mapping[str, Any]]],
    ) -> BatchTemplate:
        template = BatchTemplate(
            id=f"custom_template_{uuid.uuid4().hex[:12]}",
            name=name.strip(),
            description=description.strip(),
            subject=subject,
            configs=[TemplateConfig.model_validate(config) for config in configs],
        )
        custom = [item.model_dump(mode="json") for item in self.custom()]
        self.document.write([template.model_dump(mode="json"), *custom])
        logger.info("Saved custom template", extra={"template_id": template.id})
        return template

    def delete_custom_template(self, template_id: str) -> bool:
        custom = self.custom()
        remaining = [template for template in custom if template.id != template_id]
        if len(remaining) == len(custom):
            return False
        self.document.write([template.model_dump(mode="json") for template in remaining])
        return True

    def instantiate(self, template_id: str, base_payload: Optional[Mapping[str, Any]] = None) -> List[JobConfig]:
        """Turn a template into fresh configs.

        Payload precedence, lowest first: the template subject, ``base_payload``,
        then the template config's own payload.
        """

        template = self.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        shared: Dict[str, Any] = {"subject": template.subject} if template.subject else {}
        shared.update(base_payload or {})
        return [JobConfig(name=config.name, payload={**shared, **config.payload}) for config in template.configs]


__all__ = ["BUILT_IN_TEMPLATES", "BatchTemplate", "TemplateConfig", "TemplateLibrary"]
