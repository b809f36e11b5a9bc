import dataclasses
import json
import logging
from enum import Enum
from typing import Any, Iterable, Mapping


def to_loggable(data: Any) -> Any:
    if isinstance(data, bytes):
        return '0x' + data.hex()
    if isinstance(data, Enum):
        return data.value
    if dataclasses.is_dataclass(data) and not isinstance(data, type):
        return to_loggable(dataclasses.asdict(data))
    if isinstance(data, Mapping):
        return {key: to_loggable(value) for key, value in data.items()}
    if isinstance(data, (list, tuple, set, frozenset)):
        return type(data)(to_loggable(item) for item in data)
    if isinstance(data, Iterable) and not isinstance(data, str):
        # Generators and lazy sequences are materialized once
        return [to_loggable(item) for item in data]
    return data


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        message = record.msg if isinstance(record.msg, dict) else {'msg': record.getMessage()}

        message = to_loggable(message)

        to_json_msg = json.dumps({
            'timestamp': int(record.created),
            'name': record.name,
            'levelname': record.levelname,
            'funcName': record.funcName,
            'lineno': record.lineno,
            'module': record.module,
            **message,
        }, default=str)
        return to_json_msg


handler = logging.StreamHandler()
handler.setFormatter(JsonFormatter())

logging.basicConfig(
    level=logging.INFO,
    handlers=[handler],
)
