from fastapi import Depends
from sqlalchemy.orm import Session
from typing import Annotated
from resto.database.database import get_db

# Request-scoped database session
db_dependency = Annotated[Session, Depends(get_db)]
