"""
User Service - tenants and the users that act for them
"""
from typing import Optional, List
from sqlalchemy.orm import Session, joinedload
from sitebooks.models import Tenant, User


class TenantService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, tenant_id: int) -> Optional[Tenant]:
        return self.db.query(Tenant).filter(Tenant.id == tenant_id).first()

    def create(self, name: str) -> Tenant:
        tenant = Tenant(name=name)
        self.db.add(tenant)
        self.db.flush()
        return tenant


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User)\
            .options(joinedload(User.tenant))\
            .filter(User.username == username)\
            .first()

    def get_users_by_tenant(self, tenant_id: int) -> List[User]:
        return self.db.query(User).filter(User.tenant_id == tenant_id).all()

    def create(self, username: str, email: str, tenant_id: int, full_name: Optional[str] = None) -> User:
        if self.get_by_username(username):
            raise ValueError("Username already registered")
        user = User(
            username=username,
            email=email,
            full_name=full_name,
            tenant_id=tenant_id,
            is_active=True
        )
        self.db.add(user)
        self.db.flush()
        return user
