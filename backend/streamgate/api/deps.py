from collections.abc import Generator
from typing import Annotated

from fastapi import Depends
from sqlmodel import Session

from streamgate.backends.kinesis import KinesisBackend, get_backend
from streamgate.core.db import engine


def get_db() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_db)]
BackendDep = Annotated[KinesisBackend, Depends(get_backend)]
