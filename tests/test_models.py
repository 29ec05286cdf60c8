from ldapauth.directory import DirectoryEntry, UserRecord
from ldapauth.directory.utils import escape_ldap_filter_value, flatten_attributes, render_user_filter
from ldapauth.signals import Signal, SignalHub


def test_user_record_is_a_mapping():
    user = UserRecord.from_entry(DirectoryEntry(dn="uid=jdoe,ou=users", attributes={"uid": "jdoe", "dn": "ignored"}))
    assert user["dn"] == "uid=jdoe,ou=users"
    assert user.get("uid") == "jdoe"
    assert user.get("mail") is None
    assert len(user) == 2
    assert user.to_dict() == {"dn": "uid=jdoe,ou=users", "uid": "jdoe"}


def test_escape_ldap_filter_value():
    assert escape_ldap_filter_value("a*b(c)d\\e\x00") == "a\\2ab\\28c\\29d\\5ce\\00"
    assert escape_ldap_filter_value("jdoe") == "jdoe"


def test_render_user_filter_replaces_every_token():
    flt = render_user_filter("(|(uid={{username}})(mail={{username}}))", "j*")
    assert flt == "(|(uid=j\\2a)(mail=j\\2a))"


def test_flatten_attributes():
    assert flatten_attributes({"a": ["1"], "b": ["1", "2"], "c": [], "d": 5}) == {"a": "1", "b": ["1", "2"], "d": 5}


def test_signal_hub_isolates_failing_listener():
    hub = SignalHub()
    seen = []

    def boom():
        raise RuntimeError("listener bug")

    hub.connect(Signal.CLOSE, boom)
    hub.connect("close", lambda: seen.append("close"))
    hub.emit(Signal.CLOSE)
    assert seen == ["close"]

    hub.disconnect(Signal.CLOSE, boom)
    hub.disconnect(Signal.CLOSE, boom)
    assert hub.count(Signal.CLOSE) == 1
    hub.clear()
    assert hub.count("close") == 0
