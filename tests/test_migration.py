from cqlops.core.schema import MigrationScript, TableSchema


def _default_flags(client, row, version):
    return {**row, "flags": row["flags"] if row.get("flags") is not None else 0}


def _users(**overrides) -> TableSchema:
    kwargs = dict(
        name="users",
        columns={"userId": str, "flags": int},
        primary_keys=["userId"],
        version=1,
        migration_scripts={0: {"fields": "*", "migrate": _default_flags}},
        ignore_warnings=True,
    )
    kwargs.update(overrides)
    return TableSchema(**kwargs)


def test_row_without_version_is_migrated_on_read_and_persisted(store, connect):
    table = connect(_users()).table("users")
    store.results.append([{"user_id": "u1", "flags": None, "int_tbl_ver": None}])

    row = table.get({"userId": "u1"})

    assert row == {"userId": "u1", "flags": 0}
    assert store.statements[1:] == [
        ("UPDATE users SET flags = ?, int_tbl_ver = ? WHERE user_id = ?", (0, 1, "u1"))
    ]


def test_missing_fields_are_fetched_before_migrating(store, connect):
    table = connect(_users()).table("users")
    store.results.append([{"user_id": "u1", "int_tbl_ver": None}])
    store.results.append([{"user_id": "u1", "flags": 4}])

    row = table.get({"userId": "u1"}, fields=["userId"])

    assert row == {"userId": "u1"}
    assert store.statements[1] == ("SELECT * FROM users WHERE user_id = ? LIMIT 1", ("u1",))
    # Nothing changed: only the version marker moves.
    assert store.statements[2] == ("UPDATE users SET int_tbl_ver = ? WHERE user_id = ?", (1, "u1"))


def test_row_at_current_version_is_not_migrated(store, connect):
    calls = []

    def _spy(client, row, version):
        calls.append(version)
        return row

    table = connect(_users(migration_scripts={0: {"migrate": _spy}})).table("users")
    store.results.append([{"user_id": "u1", "flags": 2, "int_tbl_ver": 1}])

    row = table.get({"userId": "u1"})

    assert row == {"userId": "u1", "flags": 2}
    assert calls == []
    assert store.queries("UPDATE") == []


def test_three_versions_take_exactly_three_updates(store, connect):
    def _bump(client, row, version):
        return {**row, "flags": row["flags"] + 1}

    schema = _users(
        version=3,
        migration_scripts={
            0: {"fields": ["flags"], "migrate": _bump},
            1: {"fields": ["flags"], "migrate": _bump},
            2: {"fields": ["flags"], "migrate": lambda client, row, version: row},
        },
    )
    table = connect(schema).table("users")
    store.results.append([{"user_id": "u1", "flags": 0, "int_tbl_ver": 0}])

    row = table.get({"userId": "u1"})

    assert row == {"userId": "u1", "flags": 2}
    assert store.statements[1:] == [
        ("UPDATE users SET flags = ?, int_tbl_ver = ? WHERE user_id = ?", (1, 1, "u1")),
        ("UPDATE users SET flags = ?, int_tbl_ver = ? WHERE user_id = ?", (2, 2, "u1")),
        ("UPDATE users SET int_tbl_ver = ? WHERE user_id = ?", (3, "u1")),
    ]


def test_version_gap_strands_the_row(store, connect):
    schema = _users(
        version=3,
        migration_scripts={
            0: {"fields": ["flags"], "migrate": _default_flags},
            2: {"fields": ["flags"], "migrate": _default_flags},
        },
    )
    table = connect(schema).table("users")
    store.results.append([{"user_id": "u1", "flags": None, "int_tbl_ver": 0}])
    store.results.append([{"user_id": "u2", "flags": 5, "int_tbl_ver": 1}])

    first = table.get({"userId": "u1"})
    second = table.get({"userId": "u2"})

    assert first == {"userId": "u1", "flags": 0}
    assert second == {"userId": "u2", "flags": 5}
    # Version 0 -> 1 runs, then the missing script for 1 leaves the row at 1 for good.
    assert store.params("UPDATE") == [(0, 1, "u1")]


def test_script_receives_a_copy_and_the_client(store, connect):
    seen = {}

    def _mutating(client, row, version):
        seen["client"] = client
        seen["version"] = version
        row["flags"] = 9
        return row

    client = connect(_users(migration_scripts={0: MigrationScript(migrate=_mutating)}))
    store.results.append([{"user_id": "u1", "flags": 1, "int_tbl_ver": 0}])

    row = client.table("users").get({"userId": "u1"})

    assert seen == {"client": client, "version": 0}
    assert row["flags"] == 9
    assert store.params("UPDATE") == [(9, 1, "u1")]


def test_primary_keys_are_fetched_when_the_filter_lacks_them(store, connect):
    schema = _users(
        columns={"userId": str, "flags": int, "email": str},
        migration_scripts={0: {"fields": ["flags"], "migrate": _default_flags}},
    )
    table = connect(schema).table("users")
    store.results.append([{"flags": None, "int_tbl_ver": None}])
    store.results.append([{"user_id": "u1"}])

    row = table.get({"email": "e@example.com"}, fields=["flags"], allow_filtering=True)

    assert row == {"flags": 0}
    assert store.statements[1] == (
        "SELECT user_id FROM users WHERE email = ? LIMIT 1 ALLOW FILTERING",
        ("e@example.com",),
    )
    assert store.statements[2] == (
        "UPDATE users SET flags = ?, int_tbl_ver = ? WHERE user_id = ?",
        (0, 1, "u1"),
    )


def test_row_that_cannot_be_found_again_is_returned_unmigrated(store, connect):
    table = connect(_users()).table("users")
    store.results.append([{"user_id": "u1", "int_tbl_ver": None}])

    row = table.get({"userId": "u1"}, fields=["userId"])

    assert row == {"userId": "u1"}
    assert store.queries("UPDATE") == []


def test_script_returning_none_rereads_and_only_bumps_the_version(store, connect):
    def _rewrite_itself(client, row, version):
        client.table("users").update({"userId": row["userId"]}, {"flags": 42})
        return None

    table = connect(_users(migration_scripts={0: {"migrate": _rewrite_itself}})).table("users")
    store.results.append([{"user_id": "u1", "flags": 1, "int_tbl_ver": 0}])
    store.results.append([{"user_id": "u1", "flags": 42, "int_tbl_ver": 0}])

    row = table.get({"userId": "u1"})

    assert row == {"userId": "u1", "flags": 42}
    assert store.queries()[1:] == [
        "UPDATE users SET flags = ? WHERE user_id = ?",
        "SELECT * FROM users WHERE user_id = ? LIMIT 1",
        "UPDATE users SET int_tbl_ver = ? WHERE user_id = ?",
    ]


def test_always_run_script_follows_every_step(store, connect):
    def _normalize_email(client, row, version):
        return {**row, "email": row["email"].lower()}

    schema = _users(
        columns={"userId": str, "flags": int, "email": str},
        version=2,
        migration_scripts={
            0: {"fields": ["flags"], "migrate": _default_flags},
            1: {"fields": ["flags"], "migrate": lambda client, row, version: row},
            -1: {"fields": ["email"], "migrate": _normalize_email},
        },
    )
    table = connect(schema).table("users")
    store.results.append(
        [{"user_id": "u1", "flags": None, "email": "U1@Example.com", "int_tbl_ver": 0}]
    )

    row = table.get({"userId": "u1"})

    assert row == {"userId": "u1", "flags": 0, "email": "u1@example.com"}
    assert store.statements[1:] == [
        (
            "UPDATE users SET flags = ?, email = ?, int_tbl_ver = ? WHERE user_id = ?",
            (0, "u1@example.com", 1, "u1"),
        ),
        ("UPDATE users SET int_tbl_ver = ? WHERE user_id = ?", (2, "u1")),
    ]


def test_find_migrates_each_stale_row(store, connect):
    table = connect(_users()).table("users")
    store.results.append(
        [
            {"user_id": "u1", "flags": None, "int_tbl_ver": None},
            {"user_id": "u2", "flags": 3, "int_tbl_ver": 1},
        ]
    )

    rows = table.find({}).to_list()

    assert rows == [{"userId": "u1", "flags": 0}, {"userId": "u2", "flags": 3}]
    assert store.params("UPDATE") == [(0, 1, "u1")]


def test_find_migrates_each_row_of_a_partition_under_its_own_key(store, connect):
    def _shout(client, row, version):
        return {**row, "body": row["body"] + "!"}

    schema = TableSchema(
        name="messages",
        columns={"channelId": str, "messageId": str, "body": str},
        primary_keys=["channelId", "messageId"],
        version=1,
        migration_scripts={0: {"fields": ["body"], "migrate": _shout}},
        ignore_warnings=True,
    )
    table = connect(schema).table("messages")
    store.results.append(
        [
            {"channel_id": "c", "message_id": "m1", "body": "a", "int_tbl_ver": 0},
            {"channel_id": "c", "message_id": "m2", "body": "b", "int_tbl_ver": 0},
        ]
    )

    rows = table.find({"channelId": "c"}, fields=["body"])

    assert rows.to_list() == [{"body": "a!"}, {"body": "b!"}]
    assert store.statements[0] == (
        "SELECT body, channel_id, message_id, int_tbl_ver FROM messages WHERE channel_id = ?",
        ("c",),
    )
    assert store.queries("SELECT") == [store.statements[0][0]]
    assert store.params("UPDATE") == [("a!", 1, "c", "m1"), ("b!", 1, "c", "m2")]
