import functools
from dataclasses import dataclass, fields, is_dataclass
from types import GenericAlias
from typing import Any, Callable, Self, Sequence, TypeVar


class DecodeToDataclassException(Exception):
    pass


def is_int_type(annotation: Any) -> bool:
    """True for `int` and NewTypes built on top of it, e.g. SlotNumber"""
    while hasattr(annotation, '__supertype__'):
        annotation = annotation.__supertype__
    return annotation is int


@dataclass
class Nested:
    """
    Base class for dataclasses that converts all inner dicts into dataclasses
    Also works with lists of dataclasses

    Beacon API encodes uint64 values as decimal strings, so fields annotated
    with int (or a NewType of int) are converted to int as well.
    """
    def __post_init__(self):
        for field in fields(self):
            value = getattr(self, field.name)
            if isinstance(field.type, GenericAlias):
                field_type = field.type.__args__[0]
                if is_dataclass(field_type):
                    factory = self.__get_dataclass_factory(field_type)
                    setattr(self, field.name, field.type.__origin__(
                        factory(**item) if not is_dataclass(item) else item for item in value
                    ))
                elif is_int_type(field_type):
                    setattr(self, field.name, field.type.__origin__(int(item) for item in value))
            elif is_dataclass(field.type) and not is_dataclass(value):
                factory = self.__get_dataclass_factory(field.type)
                setattr(self, field.name, factory(**value))
            elif is_int_type(field.type) and isinstance(value, str):
                setattr(self, field.name, int(value))

    @staticmethod
    def __get_dataclass_factory(field_type):
        if issubclass(field_type, FromResponse):
            return field_type.from_response
        return field_type


T = TypeVar('T')


@dataclass
class FromResponse:
    """
    Class for extending dataclass with custom from_response method, ignored extra fields
    """

    @classmethod
    def from_response(cls, **kwargs) -> Self:
        class_field_names = [field.name for field in fields(cls)]
        return cls(**{k: v for k, v in kwargs.items() if k in class_field_names})


def list_of_dataclasses(
    _dataclass_factory: Callable[..., T]
) -> Callable[[Callable[..., Sequence]], Callable[..., list[T]]]:
    """Decorator to transform list of dicts from func response to list of dataclasses"""
    def decorator(func: Callable[..., Sequence]) -> Callable[..., list[T]]:
        @functools.wraps(func)
        def wrapper_decorator(*args, **kwargs):
            list_of_elements = func(*args, **kwargs)

            if not list_of_elements:
                return []

            if isinstance(list_of_elements[0], dict):
                return [_dataclass_factory(**element) for element in list_of_elements]

            raise DecodeToDataclassException(f'Type {type(list_of_elements[0])} is not supported.')
        return wrapper_decorator

    return decorator
