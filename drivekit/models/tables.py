# drivekit/models/tables.py
from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()

class Client(Base):
    __tablename__ = "clients"
    id = Column(Integer, primary_key=True)
    pid = Column(String(36), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    pid = Column(String(36), unique=True, nullable=False)
    role = Column(String(20), nullable=False, default="basic")
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True)
    root_folder = Column(String(255), nullable=True)
    folder_max_size = Column(BigInteger, nullable=True)
    hashed_password = Column(String(255), nullable=True)  # admin password login only
    created_at = Column(DateTime, server_default=func.now())

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def can_create(self) -> bool:
        return self.role in ("admin", "manager")

class Asset(Base):
    __tablename__ = "assets"
    id = Column(Integer, primary_key=True)
    asset_path = Column(String(1024), unique=True, nullable=False)
    custom_path = Column(String(1024), unique=True, nullable=True)
    asset_type = Column(String(10), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    public = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, server_default=func.now())

    def url_path(self) -> str:
        """The path an asset is addressed by: the custom path when set."""
        return self.custom_path or self.asset_path

class AssetSharing(Base):
    __tablename__ = "asset_sharing"
    __table_args__ = (UniqueConstraint("asset_id", "user_id", name="uq_asset_sharing_grantee"),)
    id = Column(Integer, primary_key=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    permission = Column(String(10), nullable=False, default="read")
    created_at = Column(DateTime, server_default=func.now())

class Bucket(Base):
    __tablename__ = "buckets"
    id = Column(Integer, primary_key=True)
    pid = Column(String(36), unique=True, nullable=False)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    partition = Column(String(255), unique=True, nullable=True)
    partition_size = Column(BigInteger, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
