import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields
from typing import Any

import pandas as pd
import pyarrow as pa
from sqldata.exceptions import ConfigError
from sqldata.strategy import get_strategy_class
from sqldata.types import Column

__all__ = [
    'DatabaseOptions',
    'pandas_numpy_data_loader',
    'pandas_pyarrow_data_loader',
    'iterdict_data_loader',
]

logger = logging.getLogger(__name__)


def iterdict_data_loader(data, columns, **kwargs) -> list[dict]:
    """Minimal data loader.

    Accepts additional keyword arguments for compatibility with other data
    loaders, but doesn't use them.
    """
    if not data:
        return []
    return list(data)


def _empty_dataframe(columns) -> pd.DataFrame:
    """Create empty DataFrame with column metadata."""
    df = pd.DataFrame(columns=Column.get_names(columns))
    df.attrs['column_types'] = Column.get_column_types_dict(columns)
    return df


def pandas_numpy_data_loader(data, columns, **kwargs) -> pd.DataFrame:
    """Standard pandas DataFrame loader using NumPy.

    Always returns a DataFrame, never None, with columns preserved for empty results.
    Includes type information in the DataFrame.attrs attribute.
    """
    if not data:
        return _empty_dataframe(columns)

    df = pd.DataFrame.from_records(list(data), columns=Column.get_names(columns))
    df.attrs['column_types'] = Column.get_column_types_dict(columns)
    return df


def pandas_pyarrow_data_loader(data, columns, **kwargs) -> pd.DataFrame:
    """PyArrow-based pandas DataFrame loader.

    Always returns a DataFrame, never None, with columns preserved for empty results.
    """
    if not data:
        return _empty_dataframe(columns)

    column_names = Column.get_names(columns)
    columns_data = [[row[col] for row in data] for col in column_names]
    df = pa.table(columns_data, names=column_names).to_pandas(types_mapper=pd.ArrowDtype)
    df.attrs['column_types'] = Column.get_column_types_dict(columns)
    return df


@dataclass
class DatabaseOptions:
    """Connection and behavior options consumed by `ConnectionManager`.

    supported driver names: `postgresql`, `sqlite`, `mssql`

    A literal `password` wins over `password_file`; the file's first line is
    read at connect time. An explicit `url` replaces server, port, user and
    database when building the connection.
    """
    drivername: str = 'postgresql'
    server: str = None
    database: str = None
    user: str = None
    password: str = None
    password_file: str = None
    url: str = None
    schema: str = None
    port: int = 0
    timeout: int = 0
    max_in_clause: int = 500
    debug: bool = False
    scrollable: bool = False
    autocommit: bool = True
    connect_retries: int = 3
    data_loader: Callable[..., Any] | None = None

    def __post_init__(self):
        strategy_cls = get_strategy_class(self.drivername)
        strategy_cls.validate_options(self)
        if self.max_in_clause <= 0:
            raise ConfigError('max_in_clause', f'must be positive, got {self.max_in_clause}')
        if self.connect_retries <= 0:
            raise ConfigError('connect_retries', f'must be positive, got {self.connect_retries}')
        if self.data_loader is None:
            self.data_loader = pandas_numpy_data_loader

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], **overrides: Any) -> 'DatabaseOptions':
        """Build options from a plain mapping, e.g. a parsed config section.

        Keys are matched case-insensitively; unknown keys are ignored.
        """
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in {**mapping, **overrides}.items():
            name = key.lower()
            if name not in known:
                logger.debug(f'Ignoring unknown database option {key!r}')
                continue
            values[name] = value
        return cls(**values)
