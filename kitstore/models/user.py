import uuid
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from sqlalchemy import func, Index
from kitstore.extensions import db, login_manager


class User(db.Model, UserMixin):
    __tablename__ = "users"

    # Opaque string id; this is the user_id carried through checkout metadata
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(255), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ux_users_lower_email", func.lower(email), unique=True),
    )

    # helpers
    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def get_id(self) -> str:
        return str(self.id)

    def to_dict(self) -> dict:
        return {"id": self.id, "email": self.email}

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"


@login_manager.user_loader
def load_user(user_id: str):
    return db.session.get(User, user_id)
