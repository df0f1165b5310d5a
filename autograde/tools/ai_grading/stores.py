"""Collaborator interfaces (queue, result store, settings) and simple implementations."""

import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol

import yaml

from autograde.libs.config_loader import ConfigType, get_config
from .models import ActivityKind, ActivitySettings, QueueItem, ResultRecord, ResultStatus
from .rubric_analyzer import build_snapshot, rubric_to_json

LOG = logging.getLogger(__name__)


class WorkQueue(Protocol):
    def enqueue(self, item: QueueItem) -> int:
        ...

    def pending(self) -> Iterator[QueueItem]:
        ...

    def mark(self, item_id: int, status: ResultStatus) -> None:
        ...


class ResultStore(Protocol):
    def save(self, record: ResultRecord) -> int:
        ...

    def get(self, record_id: int) -> Optional[ResultRecord]:
        ...


class SettingsStore(Protocol):
    def get_activity_settings(self, kind: ActivityKind, instance_id: int) -> ActivitySettings:
        ...

    def get_quiz_rubric_json(self, rubric_id: int) -> Optional[str]:
        ...


class InMemoryWorkQueue:
    """Process-local queue; the LMS normally provides a durable one."""

    def __init__(self):
        self.items: List[QueueItem] = []

    def enqueue(self, item: QueueItem) -> int:
        item_id = len(self.items) + 1
        self.items.append(item.model_copy(update={'id': item_id}))
        LOG.info("Queued %s for user %s (queue id %s)", item.event_name or 'submission',
                 item.userid, item_id)
        return item_id

    def pending(self) -> Iterator[QueueItem]:
        # Snapshot so items can be marked while iterating
        for item in list(self.items):
            if item.status == ResultStatus.PENDING:
                yield item

    def mark(self, item_id: int, status: ResultStatus) -> None:
        for i, item in enumerate(self.items):
            if item.id == item_id:
                self.items[i] = item.model_copy(update={'status': status, 'attempts': item.attempts + 1})
                return
        raise KeyError(f"Queue item {item_id} not found")


class YamlResultStore:
    """Persist result records to a YAML file."""

    def __init__(self, yaml_path: Path):
        self.yaml_path = Path(yaml_path)
        self.records: Dict[int, ResultRecord] = self._load_yaml()

    def _load_yaml(self) -> Dict[int, ResultRecord]:
        if not self.yaml_path.exists():
            return {}
        with open(self.yaml_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        records = {}
        for raw in data.get('results', []):
            record = ResultRecord.model_validate(raw)
            records[record.id] = record
        return records

    def _write_yaml(self) -> None:
        self.yaml_path.parent.mkdir(parents=True, exist_ok=True)
        data = {'results': [r.model_dump(mode='json') for r in self.records.values()]}
        with open(self.yaml_path, 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)

    def save(self, record: ResultRecord) -> int:
        """
        Insert a new record, or replace an existing one by id.

        A released record is never replaced by a failed one.
        """
        if record.id is None:
            record_id = max(self.records, default=0) + 1
            record = record.model_copy(update={'id': record_id})
        else:
            record_id = record.id
            existing = self.records.get(record_id)
            if (existing is not None and existing.status == ResultStatus.RELEASED
                    and record.status == ResultStatus.FAILED):
                LOG.warning("Not overwriting released result %s with a failed one", record_id)
                return record_id

        self.records[record_id] = record
        self._write_yaml()
        return record_id

    def get(self, record_id: int) -> Optional[ResultRecord]:
        return self.records.get(record_id)

    def find(self, userid: int, modulename: ActivityKind, instanceid: int) -> List[ResultRecord]:
        return [
            r for r in self.records.values()
            if r.userid == userid and r.modulename == modulename and r.instanceid == instanceid
        ]


class ConfigSettingsStore:
    """Activity settings and the quiz rubric library, read from the YAML config."""

    def __init__(self, configs: ConfigType):
        self.configs = configs

    def get_activity_settings(self, kind: ActivityKind, instance_id: int) -> ActivitySettings:
        defaults = {
            'quality': get_config("grading.default_quality", self.configs, default="balanced"),
            'autorelease': get_config("grading.autorelease", self.configs, default=False),
        }
        raw = get_config(f"activities.{ActivityKind(kind).value}.{instance_id}", self.configs,
                         default=None) or {}
        return ActivitySettings(**(defaults | raw))

    def is_activity_enabled(self, kind: ActivityKind, instance_id: int) -> bool:
        return self.get_activity_settings(kind, instance_id).enabled

    def get_quiz_rubric_json(self, rubric_id: int) -> Optional[str]:
        definition = get_config(f"quiz_rubrics.{rubric_id}", self.configs, default=None)
        if not definition:
            return None
        try:
            snapshot = build_snapshot(definition, ActivityKind.QUIZ.value, 0)
        except (TypeError, ValueError) as e:
            LOG.debug("Malformed quiz rubric %s: %s", rubric_id, e)
            return None
        return rubric_to_json(snapshot)


class ConfigRubricProvider:
    """
    Rubric definitions kept in the YAML config.

    Layout::

        rubrics:
          assign:
            12:
              method: rubric
              definition: {id, name, version, rubric_criteria: {...}}
    """

    def __init__(self, configs: ConfigType):
        self.configs = configs

    def _entry(self, module_kind: ActivityKind, instance_id: int) -> Mapping[str, Any]:
        return get_config(f"rubrics.{ActivityKind(module_kind).value}.{instance_id}",
                          self.configs, default=None) or {}

    def get_active_method(self, module_kind: ActivityKind, instance_id: int,
                          cm_id: Optional[int] = None) -> Optional[str]:
        entry = self._entry(module_kind, instance_id)
        if not entry:
            return None
        return entry.get('method', 'rubric')

    def get_definition(self, module_kind: ActivityKind, instance_id: int,
                       cm_id: Optional[int], method: str) -> Optional[Mapping[str, Any]]:
        return self._entry(module_kind, instance_id).get('definition')
