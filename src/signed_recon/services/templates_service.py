from __future__ import annotations

import json
import re
from dataclasses import fields
from pathlib import Path
from uuid import uuid4

from signed_recon.domain.models import TemplateConfig
from signed_recon.domain.senders import normalize_sender_key
from signed_recon.ports.storage_port import StoragePort
from signed_recon.settings import DEFAULT_EXPECTED_DIGITS

_TEMPLATE_FIELDS = {item.name for item in fields(TemplateConfig)}


class TemplatesService:
    def __init__(self, storage: StoragePort) -> None:
        self._storage = storage

    def get_template(self, sender_key: str) -> TemplateConfig | None:
        return self._storage.get_template(normalize_sender_key(sender_key))

    def list_templates(self) -> list[TemplateConfig]:
        return self._storage.list_templates()

    def save_template(self, template: TemplateConfig) -> TemplateConfig:
        sender_key = normalize_sender_key(template.sender_key)
        if not sender_key:
            raise ValueError("Template sender key is required")
        if template.page < 1:
            raise ValueError("Template page must be a positive integer")
        if template.expected_digits < 1:
            raise ValueError("Template expected digits must be positive")
        if template.regex:
            try:
                re.compile(template.regex)
            except re.error as exc:
                raise ValueError(f"Invalid work order regex: {template.regex}") from exc
        template.sender_key = sender_key
        template.template_id = template.template_id or f"tpl_{uuid4().hex[:12]}"
        return self._storage.save_template(template)

    def seed_if_empty(self) -> bool:
        if self._storage.count_templates() != 0:
            return False
        templates_path = self._templates_path()
        if not templates_path.exists():
            return False
        try:
            data = json.loads(templates_path.read_text())
        except json.JSONDecodeError as exc:
            raise RuntimeError("Failed to load templates.json") from exc
        if not isinstance(data, list):
            raise RuntimeError("templates.json must be a list of templates")
        for item in data:
            self.save_template(self._from_dict(item))
        return True

    @staticmethod
    def _from_dict(item: dict) -> TemplateConfig:
        if not isinstance(item, dict):
            raise RuntimeError("templates.json entries must be objects")
        values = {key: value for key, value in item.items() if key in _TEMPLATE_FIELDS}
        values.setdefault("template_id", "")
        values.setdefault("expected_digits", DEFAULT_EXPECTED_DIGITS)
        if "sender_key" not in values:
            raise RuntimeError("templates.json entries need a sender_key")
        return TemplateConfig(**values)

    @staticmethod
    def _templates_path() -> Path:
        return Path(__file__).resolve().parents[3] / "templates.json"
