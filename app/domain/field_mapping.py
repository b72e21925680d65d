"""Boundary between snake_case persistence rows and camelCase application payloads.

Every table row leaves the service layer through a read model.  A read model is
accepted only if it declares a field for every column of its table (columns may
be withheld explicitly, e.g. password hashes), so a new column can never be
silently dropped on the way out.
"""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlmodel import SQLModel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CamelReadModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class IncompleteMappingError(TypeError):
    pass


def table_columns(table_model: type[SQLModel]) -> set[str]:
    table = getattr(table_model, "__table__", None)
    if table is None:
        raise TypeError(f"{table_model.__name__} is not a table model")
    return {column.name for column in table.columns}


def unmapped_columns(
    table_model: type[SQLModel],
    read_model: type[BaseModel],
    *,
    withheld: Iterable[str] = (),
) -> set[str]:
    return table_columns(table_model) - set(read_model.model_fields) - set(withheld)


def ensure_total_mapping(
    table_model: type[SQLModel],
    read_model: type[BaseModel],
    *,
    withheld: Iterable[str] = (),
) -> None:
    missing = unmapped_columns(table_model, read_model, withheld=withheld)
    if missing:
        raise IncompleteMappingError(
            f"{read_model.__name__} does not map {table_model.__name__} columns: {', '.join(sorted(missing))}"
        )
