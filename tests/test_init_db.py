from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash

from app.erm.db import build_engine
from app.erm.models import Base, Role, User
from app.erm.modules.resources.models import PropertyCatalog, ResourceType
from scripts.init_db import PERMISSIONS, seed_only


def test_seed_only_is_idempotent(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path / 'seed.db'}"
    engine = build_engine(db_url)
    Base.metadata.create_all(engine)

    monkeypatch.setenv("ADMIN_EMAIL", "Boss@Example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "first")
    seed_only(database_url=db_url)

    # A second run with a different password must not reset the admin.
    monkeypatch.setenv("ADMIN_PASSWORD", "second")
    seed_only(database_url=db_url)

    with Session(engine) as s:
        users = s.query(User).all()
        assert [u.email for u in users] == ["boss@example.com"]
        assert check_password_hash(users[0].password_hash, "first")
        assert [r.key for r in users[0].roles] == ["admin"]

        admin = s.query(Role).filter(Role.key == "admin").one()
        assert len(admin.permissions) == len(PERMISSIONS)
        employee = s.query(Role).filter(Role.key == "employee").one()
        assert "workflows.approve" not in {p.key for p in employee.permissions}

        assert {t.name for t in s.query(ResourceType).all()} == {"Hardware", "Software", "Cloud"}
        keys = [p.key for p in s.query(PropertyCatalog).all()]
        assert len(keys) == len(set(keys))
    engine.dispose()
