import io
import logging

import pytest

from migrakit.sqlparser import (
    Annotation,
    AnnotationError,
    Direction,
    ParsedSQL,
    SQLParseError,
    direction_from_bool,
    ends_with_semicolon,
    extract_annotation,
    interpolate_env,
    parse_all_from_fs,
    parse_sql_migration,
)

MULTILINE_SQL = """-- +goose Up
CREATE TABLE post (
        id int NOT NULL,
        title text,
        body text,
        PRIMARY KEY(id)
);                  -- 1st stmt

-- comment
SELECT 2;           -- 2nd stmt
SELECT 3; SELECT 3; -- 3rd stmt
SELECT 4;           -- 4th stmt

-- +goose Down
-- comment
DROP TABLE post;    -- 1st stmt
"""

FUNCTXT = """-- +goose Up
CREATE TABLE IF NOT EXISTS histories (
    id                BIGSERIAL  PRIMARY KEY,
    current_value     varchar(2000) NOT NULL,
    created_at      timestamp with time zone  NOT NULL
);

-- +goose StatementBegin
CREATE OR REPLACE FUNCTION histories_partition_creation( DATE, DATE )
returns void AS $$
DECLARE
    create_query text;
BEGIN
    FOR create_query IN SELECT
            'CREATE TABLE IF NOT EXISTS histories_'
            || TO_CHAR( d, 'YYYY_MM' )
            || ' ( CHECK( created_at >= timestamp '''
            || TO_CHAR( d, 'YYYY-MM-DD 00:00:00' )
            || ''' AND created_at < timestamp '''
            || TO_CHAR( d + INTERVAL '1 month', 'YYYY-MM-DD 00:00:00' )
            || ''' ) ) inherits ( histories );'
        FROM generate_series( $1, $2, '1 month' ) AS d
    LOOP
        EXECUTE create_query;
    END LOOP;  -- LOOP END
END;         -- FUNCTION END
$$
language plpgsql;
-- +goose StatementEnd

-- +goose Down
drop function histories_partition_creation(DATE, DATE);
drop TABLE histories;
"""

MULTI_UP_DOWN = """-- +goose Up
CREATE TABLE post (
        id int NOT NULL,
        title text,
        body text,
        PRIMARY KEY(id)
);

-- +goose Down
DROP TABLE post;

-- +goose Up
CREATE TABLE fancier_post (
        id int NOT NULL,
        title text,
        body text,
        created_on timestamp without time zone,
        PRIMARY KEY(id)
);
"""

DOWN_FIRST = """-- +goose Down
DROP TABLE fancier_post;
"""

STATEMENT_BEGIN_NO_STATEMENT_END = """-- +goose Up
CREATE TABLE IF NOT EXISTS histories (
  id                BIGSERIAL  PRIMARY KEY,
  current_value     varchar(2000) NOT NULL,
  created_at      timestamp with time zone  NOT NULL
);

-- +goose StatementBegin
CREATE OR REPLACE FUNCTION histories_partition_creation( DATE, DATE )
returns void AS $$
DECLARE
  create_query text;
BEGIN
  FOR create_query IN SELECT
      'CREATE TABLE IF NOT EXISTS histories_'
      || TO_CHAR( d, 'YYYY_MM' )
    FROM generate_series( $1, $2, '1 month' ) AS d
  LOOP
    EXECUTE create_query;
  END LOOP;  -- LOOP END
END;         -- FUNCTION END
$$
language plpgsql;

-- +goose Down
drop function histories_partition_creation(DATE, DATE);
drop TABLE histories;
"""

UNFINISHED_SQL = """
-- +goose Up
ALTER TABLE post

-- +goose Down
"""

EMPTY_SQL = """-- +goose Up
-- This is just a comment"""

EMPTY_SQL2 = """

-- comment
-- +goose Up

-- comment
-- +goose Down

"""

NO_UP_DOWN_ANNOTATIONS = """
CREATE TABLE post (
    id int NOT NULL,
    title text,
    body text,
    PRIMARY KEY(id)
);
"""

MYSQL_CHANGE_DELIMITER = """
-- +goose Up
-- +goose StatementBegin
DELIMITER | 
-- +goose StatementEnd

-- +goose StatementBegin
CREATE FUNCTION my_func( str CHAR(255) ) RETURNS CHAR(255) DETERMINISTIC
BEGIN 
  RETURN "Dummy Body"; 
END | 
-- +goose StatementEnd

-- +goose StatementBegin
DELIMITER ; 
-- +goose StatementEnd

select my_func("123") from dual;
-- +goose Down
"""

COPY_FROM_STDIN = r"""
-- +goose Up
-- +goose StatementBegin
COPY public.django_content_type (id, app_label, model) FROM stdin;
1	admin	logentry
2	auth	permission
3	auth	group
4	auth	user
5	contenttypes	contenttype
6	sessions	session
\.
-- +goose StatementEnd
"""

PLPGSQL_SYNTAX = """
-- +goose Up
-- +goose StatementBegin
CREATE OR REPLACE FUNCTION update_updated_at_column()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = now();
    RETURN NEW;
END;
$$ language 'plpgsql';
-- +goose StatementEnd
-- +goose StatementBegin
CREATE TRIGGER update_properties_updated_at BEFORE UPDATE ON properties FOR EACH ROW EXECUTE PROCEDURE  update_updated_at_column();
-- +goose StatementEnd

-- +goose Down
-- +goose StatementBegin
DROP TRIGGER update_properties_updated_at
-- +goose StatementEnd
-- +goose StatementBegin
DROP FUNCTION update_updated_at_column()
-- +goose StatementEnd
"""

PLPGSQL_SYNTAX_MIXED = """
-- +goose Up
-- +goose StatementBegin
CREATE OR REPLACE FUNCTION update_updated_at_column()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = now();
    RETURN NEW;
END;
$$ language 'plpgsql';
-- +goose StatementEnd

CREATE TRIGGER update_properties_updated_at
BEFORE UPDATE
ON properties 
FOR EACH ROW EXECUTE PROCEDURE  update_updated_at_column();

-- +goose Down
DROP TRIGGER update_properties_updated_at;
DROP FUNCTION update_updated_at_column();
"""


@pytest.mark.parametrize(
    "line, expected",
    [
        ("END;", True),
        ("END; -- comment", True),
        ("END   ; -- comment", True),
        ("END -- comment", False),
        ("END -- comment ;", False),
        ('END " ; " -- comment', False),
    ],
)
def test_ends_with_semicolon(line, expected):
    assert ends_with_semicolon(line) is expected


@pytest.mark.parametrize(
    "sql, up, down",
    [
        (MULTILINE_SQL, 4, 1),
        (EMPTY_SQL, 0, 0),
        (EMPTY_SQL2, 0, 0),
        (FUNCTXT, 2, 2),
        (MYSQL_CHANGE_DELIMITER, 4, 0),
        (COPY_FROM_STDIN, 1, 0),
        (PLPGSQL_SYNTAX, 2, 2),
        (PLPGSQL_SYNTAX_MIXED, 2, 2),
    ],
)
def test_split_statements(sql, up, down):
    up_stmts, _ = parse_sql_migration(io.StringIO(sql), Direction.UP)
    down_stmts, _ = parse_sql_migration(io.StringIO(sql), Direction.DOWN)
    assert len(up_stmts) == up
    assert len(down_stmts) == down


@pytest.mark.parametrize(
    "sql",
    [
        STATEMENT_BEGIN_NO_STATEMENT_END,
        UNFINISHED_SQL,
        NO_UP_DOWN_ANNOTATIONS,
        MULTI_UP_DOWN,
        DOWN_FIRST,
    ],
)
def test_parsing_errors(sql):
    with pytest.raises(SQLParseError):
        parse_sql_migration(sql, Direction.UP)


def test_statement_contents():
    up, _ = parse_sql_migration(MULTILINE_SQL, Direction.UP)
    assert up[1] == "SELECT 2;           -- 2nd stmt"
    assert up[2] == "SELECT 3; SELECT 3; -- 3rd stmt"
    assert up[0].startswith("CREATE TABLE post (\n")
    down, _ = parse_sql_migration(MULTILINE_SQL, Direction.DOWN)
    assert down == ["DROP TABLE post;    -- 1st stmt"]


def test_statement_block_kept_whole():
    sql = (
        "-- +goose Up\n"
        "-- +goose StatementBegin\n"
        "CREATE FUNCTION f() RETURNS int AS $$\n"
        "BEGIN\n"
        "  RETURN 1;\n"
        "END;\n"
        "$$ LANGUAGE plpgsql;\n"
        "-- +goose StatementEnd\n"
    )
    up, use_tx = parse_sql_migration(sql, Direction.UP)
    assert up == [
        "CREATE FUNCTION f() RETURNS int AS $$\nBEGIN\n  RETURN 1;\nEND;\n$$ LANGUAGE plpgsql;"
    ]
    assert use_tx is True


def test_comments_inside_statement_kept():
    sql = "-- +goose Up\n-- leading\nSELECT\n-- inner\n1;\n"
    up, _ = parse_sql_migration(sql, Direction.UP)
    assert up == ["SELECT\n-- inner\n1;"]


def test_crlf_line_endings():
    sql = "-- +goose Up\r\nSELECT 1;\r\n-- +goose Down\r\nSELECT 2;\r\n"
    assert parse_sql_migration(sql, Direction.UP)[0] == ["SELECT 1;"]
    assert parse_sql_migration(sql, Direction.DOWN)[0] == ["SELECT 2;"]


def test_use_transactions():
    with_tx = "-- +goose Up\nCREATE TABLE users (id int);\n-- +goose Down\nDROP TABLE users;\n"
    no_tx = "-- +goose NO TRANSACTION\n-- +goose Up\nCREATE INDEX CONCURRENTLY i ON t (c);\n"
    assert parse_sql_migration(with_tx, Direction.UP)[1] is True
    assert parse_sql_migration(no_tx, Direction.UP)[1] is False


def test_bytes_stream():
    stmts, _ = parse_sql_migration(io.BytesIO(b"-- +goose Up\nSELECT 1;\n"), Direction.UP)
    assert stmts == ["SELECT 1;"]


def test_string_direction_accepted():
    stmts, _ = parse_sql_migration("-- +goose Up\nSELECT 1;\n", "up")
    assert stmts == ["SELECT 1;"]


def test_debug_logging(caplog):
    caplog.set_level(logging.DEBUG, logger="migrakit.sqlparser")
    stmts, _ = parse_sql_migration("-- +goose Up\nSELECT 42;\n", Direction.UP, debug=True)
    assert stmts == ["SELECT 42;"]
    assert any("SELECT 42;" in r.getMessage() for r in caplog.records)


def test_envsub(monkeypatch):
    monkeypatch.setenv("GOOSE_ENV_REGION", "us_east_")
    monkeypatch.setenv("GOOSE_ENV_SET_BUT_EMPTY_VALUE", "")
    monkeypatch.setenv("GOOSE_ENV_NAME", "foo")
    sql = (
        "-- +goose ENVSUB ON\n"
        "-- +goose Up\n"
        "CREATE TABLE ${GOOSE_ENV_REGION}${GOOSE_ENV_NAME} (id int);\n"
        "SELECT '${GOOSE_ENV_SET_BUT_EMPTY_VALUE-default}';\n"
        "-- +goose ENVSUB OFF\n"
        "SELECT '${GOOSE_ENV_NAME}';\n"
        "-- +goose Down\n"
        "DROP TABLE ${GOOSE_ENV_REGION}foo;\n"
    )
    up, _ = parse_sql_migration(sql, Direction.UP)
    assert up == [
        "CREATE TABLE us_east_foo (id int);",
        "SELECT '';",
        "SELECT '${GOOSE_ENV_NAME}';",
    ]
    down, _ = parse_sql_migration(sql, Direction.DOWN)
    assert down == ["DROP TABLE ${GOOSE_ENV_REGION}foo;"]


def test_envsub_error(monkeypatch):
    monkeypatch.delenv("SOME_UNSET_VAR", raising=False)
    sql = """
-- +goose ENVSUB ON
-- +goose Up
CREATE TABLE post (
    id int NOT NULL,
    title text,
    ${SOME_UNSET_VAR?required env var not set} text,
    PRIMARY KEY(id)
);
"""
    with pytest.raises(SQLParseError) as info:
        parse_sql_migration(sql, Direction.UP)
    assert (
        "variable substitution failed: $SOME_UNSET_VAR: required env var not set:"
        in str(info.value)
    )


def test_interpolate_env_forms():
    env = {"A": "alpha", "EMPTY": ""}
    assert interpolate_env("x ${A} $A y", env) == "x alpha alpha y"
    assert interpolate_env("${MISSING}", env) == ""
    assert interpolate_env("${MISSING:-d}", env) == "d"
    assert interpolate_env("${EMPTY:-d}", env) == "d"
    assert interpolate_env("${EMPTY-d}", env) == ""
    assert interpolate_env("${MISSING-${A}}", env) == "alpha"
    assert interpolate_env("${A:1:3}", env) == "lph"
    assert interpolate_env("cost $1", env) == "cost $1"


def test_interpolate_env_required():
    with pytest.raises(ValueError, match=r"\$NEEDED: must be set"):
        interpolate_env("${NEEDED?must be set}", {})
    with pytest.raises(ValueError, match=r"\$EMPTY: not set"):
        interpolate_env("${EMPTY:?}", {"EMPTY": ""})
    assert interpolate_env("${EMPTY?oops}", {"EMPTY": ""}) == ""


@pytest.mark.parametrize(
    "line, expected",
    [
        ("-- +goose Up", Annotation.UP),
        ("-- +goose Down", Annotation.DOWN),
        ("-- +goose StatementBegin", Annotation.STATEMENT_BEGIN),
        ("-- +goose NO TRANSACTION", Annotation.NO_TRANSACTION),
        ("-- +goose   UP \t", Annotation.UP),
    ],
)
def test_extract_annotation(line, expected):
    assert extract_annotation(line) is expected


@pytest.mark.parametrize(
    "line",
    [
        "-- +goose unsupported",
        "-- +goose",
        " -- +goose   UP \t",
        "\t-- +goose   UP \t",
        "-- +goose +goose Up",
    ],
)
def test_extract_annotation_errors(line):
    with pytest.raises(AnnotationError):
        extract_annotation(line)


def test_empty_annotation_message():
    with pytest.raises(AnnotationError, match="empty annotation"):
        extract_annotation("-- +goose")


def test_unknown_annotation_in_file():
    with pytest.raises(AnnotationError, match="failed to parse annotation line"):
        parse_sql_migration("-- +goose Up\n-- +goose Sideways\n", Direction.UP)


def test_direction():
    assert str(Direction.UP) == "up"
    assert str(Direction.DOWN) == "down"
    assert Direction.UP.to_bool() is True
    assert Direction.DOWN.to_bool() is False
    assert direction_from_bool(True) is Direction.UP
    assert direction_from_bool(False) is Direction.DOWN


def test_parse_all_from_fs_file_not_exist(tmp_path):
    with pytest.raises(FileNotFoundError):
        parse_all_from_fs(tmp_path, "001_foo.sql")


def test_parse_all_from_fs_empty_file(tmp_path):
    (tmp_path / "001_foo.sql").write_text("")
    with pytest.raises(SQLParseError) as info:
        parse_all_from_fs(tmp_path, "001_foo.sql")
    assert "failed to parse migration" in str(info.value)
    assert "must start with '-- +goose Up' annotation" in str(info.value)


@pytest.mark.parametrize(
    "name, content, use_tx, up, down",
    [
        ("001_foo.sql", "\n-- +goose Up\n", True, 0, 0),
        ("002_bar.sql", "\n-- +goose Up\n-- +goose Down\n", True, 0, 0),
        (
            "003_baz.sql",
            "\n-- +goose Up\nCREATE TABLE foo (id int);\nCREATE TABLE bar (id int);\n\n"
            "-- +goose Down\nDROP TABLE bar;\n",
            True,
            2,
            1,
        ),
        (
            "004_qux.sql",
            "\n-- +goose NO TRANSACTION\n-- +goose Up\nCREATE TABLE foo (id int);\n"
            "-- +goose Down\nDROP TABLE foo;\n",
            False,
            1,
            1,
        ),
    ],
)
def test_parse_all_from_fs_statements(tmp_path, name, content, use_tx, up, down):
    (tmp_path / name).write_text(content)
    parsed = parse_all_from_fs(tmp_path, name)
    assert isinstance(parsed, ParsedSQL)
    assert parsed.use_tx is use_tx
    assert len(parsed.up) == up
    assert len(parsed.down) == down


def test_parse_all_from_fs_contents(tmp_path):
    (tmp_path / "005_x.sql").write_text(
        "-- +goose Up\nCREATE TABLE foo (id int);\n-- +goose Down\nDROP TABLE foo;\n"
    )
    parsed = parse_all_from_fs(str(tmp_path), "005_x.sql")
    assert parsed == ParsedSQL(
        use_tx=True, up=["CREATE TABLE foo (id int);"], down=["DROP TABLE foo;"]
    )


def test_parse_all_from_fs_error_names_file(tmp_path):
    (tmp_path / "006_bad.sql").write_text("-- +goose Up\nALTER TABLE post\n")
    with pytest.raises(SQLParseError, match="failed to parse 006_bad.sql"):
        parse_all_from_fs(tmp_path, "006_bad.sql")