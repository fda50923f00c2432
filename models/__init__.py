from models.base_model import Base, BaseModel, utc_now
from models.role import Role
from models.user import User
from models.refresh_token import RefreshToken
from models.db_storage import DBStorage

__all__ = ["Base", "BaseModel", "utc_now", "Role", "User", "RefreshToken", "DBStorage"]
