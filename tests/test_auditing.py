"""Tests for request-scoped current user and automatic auditing."""


def _add_user(session, email, **kwargs):
    from accounts.users.models import User

    user = User(email=email, password_hash="x", name=kwargs.pop("name", "Test"), **kwargs)
    session.add(user)
    session.commit()
    return user


class TestCurrentUser:
    """Tests for the current-user context."""

    def test_anonymous_by_default(self):
        from accounts.users.auditing import current_user

        assert current_user() is None

    def test_as_current_user_restores_previous(self):
        from accounts.users.auditing import as_current_user, current_user
        from accounts.users.dto import UserDto

        dto = UserDto(id=7, username="seven@example.com")

        with as_current_user(dto):
            assert current_user().id == 7

        assert current_user() is None


class TestAuditorAware:
    """Tests for resolving the auditor."""

    def test_no_auditor_when_anonymous(self, session):
        from accounts.users.auditing import AuditorAware

        assert AuditorAware().get_current_auditor(session) is None

    def test_auditor_is_current_user_row(self, session):
        from accounts.users.auditing import AuditorAware, as_current_user

        admin = _add_user(session, "admin@example.com")

        with as_current_user(admin.to_dto()):
            auditor = AuditorAware().get_current_auditor(session)

        assert auditor.id == admin.id


class TestAuditingListener:
    """Tests for created_by / last_modified_by stamping."""

    def test_anonymous_insert_has_no_creator(self, session):
        user = _add_user(session, "jane@example.com")

        assert user.created_by_id is None
        assert user.last_modified_by_id is None
        assert user.created_at is not None
        assert user.version == 1

    def test_insert_records_creator(self, session):
        from accounts.users.auditing import as_current_user

        admin = _add_user(session, "admin@example.com")

        with as_current_user(admin.to_dto()):
            user = _add_user(session, "jane@example.com")

        assert user.created_by_id == admin.id
        assert user.last_modified_by_id == admin.id

    def test_update_records_modifier(self, session):
        from accounts.users.auditing import as_current_user

        jane = _add_user(session, "jane@example.com")
        admin = _add_user(session, "admin@example.com")

        with as_current_user(admin.to_dto()):
            jane.name = "Jane Doe"
            session.commit()

        assert jane.created_by_id is None
        assert jane.last_modified_by_id == admin.id
        assert jane.version == 2
