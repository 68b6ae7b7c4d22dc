"""
Auth Models — organizations and user profiles.

Authentication itself happens upstream; these tables hold the profile the
service trusts for org scope and role. A user's role is one of the closed
set MANAGER / CEO / ADMIN.
"""

from ceodesk.models import db
from ceodesk.models.base import OrgModel, iso, new_uuid, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

ROLE_CODES = ("MANAGER", "CEO", "ADMIN")
ELEVATED_ROLES = frozenset({"CEO", "ADMIN"})


# ═══════════════════════════════════════════════════════════════
# 1. ORGANIZATIONS
# ═══════════════════════════════════════════════════════════════
class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    users = db.relationship("User", back_populates="organization", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
        }


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(OrgModel):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    email = db.Column(db.String(200), nullable=False)
    full_name = db.Column(db.String(200))
    role_code = db.Column(db.String(20), nullable=False, default="MANAGER")
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Same email may exist in different organizations
    __table_args__ = (
        db.UniqueConstraint("org_id", "email", name="uq_user_org_email"),
        db.CheckConstraint("role_code IN ('MANAGER', 'CEO', 'ADMIN')", name="ck_users_role_code"),
    )

    organization = db.relationship("Organization", back_populates="users")

    @property
    def is_elevated(self) -> bool:
        return self.role_code in ELEVATED_ROLES

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "email": self.email,
            "full_name": self.full_name,
            "role_code": self.role_code,
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.id} {self.role_code}>"
