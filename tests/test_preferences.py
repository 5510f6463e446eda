from vault_app.models import LAST_PRIMARY_MANAGER_LOGIC, UserPreference


def test_preference_round_trip(app):
    assert UserPreference.get(LAST_PRIMARY_MANAGER_LOGIC) is None
    assert UserPreference.get(LAST_PRIMARY_MANAGER_LOGIC, "json") == "json"

    assert UserPreference.set(LAST_PRIMARY_MANAGER_LOGIC, "contract") is True
    assert UserPreference.get(LAST_PRIMARY_MANAGER_LOGIC) == "contract"

    assert UserPreference.set(LAST_PRIMARY_MANAGER_LOGIC, "department") is True
    assert UserPreference.get(LAST_PRIMARY_MANAGER_LOGIC) == "department"
    assert UserPreference.query.count() == 1


def test_typed_preferences(app):
    UserPreference.set("detection_sample_size", 250, value_type="integer")
    UserPreference.set("remember_rule", False, value_type="boolean")

    assert UserPreference.get("detection_sample_size") == 250
    assert UserPreference.get("remember_rule") is False
