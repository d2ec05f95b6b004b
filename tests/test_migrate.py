"""마이그레이션 러너 테스트 (가짜 커넥션 + 메모리 이력 테이블)"""

import psycopg2
import pytest

from pgindex.errors import MigrationError, ValidationError
from pgindex.history import AppliedMigration, TYPE_BASELINE
from pgindex.migrate import (
    ABOVE_TARGET,
    BASELINE,
    BELOW_BASELINE,
    IGNORED,
    MISSING,
    OUTDATED,
    PENDING,
    SUCCESS,
    Migrator,
    build_info,
    render_info,
)
from pgindex.scripts import Version, scan_migrations


@pytest.fixture
def three_migrations(write_migration):
    write_migration("V1__create_table.sql", "CREATE TABLE idx_btree (id int);")
    write_migration("V2__seed.sql", "INSERT INTO idx_btree SELECT generate_series(1, 10);")
    write_migration("R__overview.sql", "CREATE OR REPLACE VIEW index_overview AS SELECT 1;")


def states(rows):
    return {(r.version or r.description): r.state for r in rows}


class TestMigrate:

    def test_applies_pending_in_order(self, make_migrator, fake_conn, history, three_migrations):
        with make_migrator() as migrator:
            applied = migrator.migrate()

        assert applied == 3
        assert [r.script for r in history.rows] == [
            "V1__create_table.sql",
            "V2__seed.sql",
            "R__overview.sql",
        ]
        assert all(r.success for r in history.rows)
        assert fake_conn.statements == [
            "CREATE TABLE idx_btree (id int);",
            "INSERT INTO idx_btree SELECT generate_series(1, 10);",
            "CREATE OR REPLACE VIEW index_overview AS SELECT 1;",
        ]
        assert history.created

    def test_second_run_is_noop(self, make_migrator, fake_conn, history, three_migrations):
        with make_migrator() as migrator:
            migrator.migrate()
            executed = len(fake_conn.executed)

            assert migrator.migrate() == 0

        assert len(fake_conn.executed) == executed
        assert len(history.rows) == 3

    def test_new_migration_applied_on_next_run(self, make_migrator, history,
                                               three_migrations, write_migration):
        with make_migrator() as migrator:
            migrator.migrate()
            write_migration("V3__more.sql", "SELECT 3;")
            assert migrator.migrate() == 1

        assert history.rows[-1].script == "V3__more.sql"

    def test_takes_and_releases_lock(self, make_migrator, history, three_migrations):
        with make_migrator() as migrator:
            migrator.migrate()

        assert history.locks == 1
        assert history.unlocks == 1

    def test_target_version(self, make_migrator, history, three_migrations):
        with make_migrator(target="1") as migrator:
            applied = migrator.migrate()

        assert applied == 2
        assert [r.script for r in history.rows] == ["V1__create_table.sql", "R__overview.sql"]

    def test_comment_only_migration_is_recorded(self, make_migrator, fake_conn, history,
                                                write_migration):
        write_migration("V1__placeholder.sql", "-- 아직 내용 없음\n")

        with make_migrator() as migrator:
            assert migrator.migrate() == 1

        assert fake_conn.statements == []
        assert history.rows[0].success

    def test_failed_migration_rolls_back(self, make_migrator, fake_conn, history, write_migration):
        write_migration("V1__ok.sql", "SELECT 1;")
        write_migration("V2__broken.sql", "CREATE TABLE BROKEN (;")
        fake_conn.fail_on = "BROKEN"

        with make_migrator() as migrator:
            with pytest.raises(MigrationError, match="V2__broken.sql"):
                migrator.migrate()

        assert [r.script for r in history.rows] == ["V1__ok.sql"]
        assert fake_conn.rollbacks >= 1
        assert history.unlocks == 1

    def test_failure_keeps_psycopg2_cause(self, make_migrator, fake_conn, write_migration):
        write_migration("V1__broken.sql", "BROKEN;")
        fake_conn.fail_on = "BROKEN"

        with make_migrator() as migrator:
            with pytest.raises(MigrationError) as excinfo:
                migrator.migrate()

        assert isinstance(excinfo.value.__cause__, psycopg2.ProgrammingError)


class TestNonTransactional:

    SQL = (
        "-- migrate:no-transaction\n"
        "CREATE INDEX CONCURRENTLY idx_a ON t (a);\n"
        "CREATE INDEX CONCURRENTLY idx_b ON t (b);\n"
    )

    def test_runs_each_statement_in_autocommit(self, make_migrator, fake_conn, history,
                                               write_migration):
        write_migration("V1__concurrent.sql", self.SQL)

        with make_migrator() as migrator:
            assert migrator.migrate() == 1

        assert len(fake_conn.executed) == 2
        assert all(autocommit for _, autocommit in fake_conn.executed)
        assert fake_conn.executed[0][0].endswith("CREATE INDEX CONCURRENTLY idx_a ON t (a)")
        assert fake_conn.executed[1][0] == "CREATE INDEX CONCURRENTLY idx_b ON t (b)"
        assert fake_conn.autocommit is False
        assert history.rows[0].success

    def test_failure_is_recorded_and_blocks_until_repair(self, make_migrator, fake_conn,
                                                         history, write_migration):
        write_migration("V1__concurrent.sql", self.SQL)
        fake_conn.fail_on = "idx_b"

        with make_migrator() as migrator:
            with pytest.raises(MigrationError):
                migrator.migrate()

            assert len(history.rows) == 1
            assert history.rows[0].success is False
            assert fake_conn.autocommit is False

            with pytest.raises(MigrationError, match="repair"):
                migrator.migrate()

            result = migrator.repair()
            assert result.removed_failed == 1
            assert history.rows == []

            fake_conn.fail_on = None
            assert migrator.migrate() == 1

        assert history.rows[0].success


class TestValidate:

    def test_checksum_mismatch(self, make_migrator, history, write_migration):
        path = write_migration("V1__create_table.sql", "CREATE TABLE t (id int);")

        with make_migrator() as migrator:
            migrator.migrate()
            path.write_text("CREATE TABLE t (id bigint);")

            with pytest.raises(ValidationError) as excinfo:
                migrator.validate()
            assert "체크섬" in excinfo.value.problems[0]

            with pytest.raises(ValidationError):
                migrator.migrate()

    def test_repair_realigns_checksum(self, make_migrator, history, write_migration):
        path = write_migration("V1__create_table.sql", "CREATE TABLE t (id int);")

        with make_migrator() as migrator:
            migrator.migrate()
            path.write_text("CREATE TABLE t (id bigint);")

            result = migrator.repair()
            assert result.realigned_checksums == 1
            assert migrator.validate() == []

    def test_missing_local_file(self, make_migrator, history, write_migration):
        path = write_migration("V1__create_table.sql", "SELECT 1;")

        with make_migrator() as migrator:
            migrator.migrate()
            path.unlink()

            with pytest.raises(ValidationError, match="로컬 파일이 없습니다"):
                migrator.validate()
            assert states(migrator.info())["1"] == MISSING

    def test_out_of_order_migration_is_ignored(self, make_migrator, history, write_migration):
        write_migration("V1__one.sql", "SELECT 1;")
        write_migration("V3__three.sql", "SELECT 3;")

        with make_migrator() as migrator:
            migrator.migrate()
            write_migration("V2__two.sql", "SELECT 2;")

            assert states(migrator.info())["2"] == IGNORED
            with pytest.raises(ValidationError, match="V2__two.sql"):
                migrator.migrate()

    def test_ignored_not_applied_without_validation(self, make_migrator, history, write_migration):
        write_migration("V1__one.sql", "SELECT 1;")
        write_migration("V3__three.sql", "SELECT 3;")

        with make_migrator(validate_on_migrate=False) as migrator:
            migrator.migrate()
            write_migration("V2__two.sql", "SELECT 2;")
            assert migrator.migrate() == 0

    def test_validate_without_history(self, make_migrator, three_migrations):
        with make_migrator() as migrator:
            assert migrator.validate() == []


class TestRepeatable:

    def test_reapplied_when_changed(self, make_migrator, history, write_migration):
        path = write_migration("R__view.sql", "CREATE OR REPLACE VIEW v AS SELECT 1;")

        with make_migrator() as migrator:
            assert migrator.migrate() == 1
            assert migrator.migrate() == 0

            path.write_text("CREATE OR REPLACE VIEW v AS SELECT 2;")
            assert states(migrator.info())["view"] == OUTDATED
            assert migrator.migrate() == 1
            assert states(migrator.info())["view"] == SUCCESS

        assert len(history.rows) == 2

    def test_applied_after_versioned(self, make_migrator, history, write_migration):
        write_migration("R__a_view.sql", "SELECT 'view';")
        write_migration("V5__table.sql", "SELECT 'table';")

        with make_migrator() as migrator:
            migrator.migrate()

        assert [r.script for r in history.rows] == ["V5__table.sql", "R__a_view.sql"]


class TestBaseline:

    def test_non_empty_schema_requires_baseline(self, make_migrator, history, three_migrations):
        history.others = ["legacy_table"]

        with make_migrator() as migrator:
            with pytest.raises(MigrationError, match="baseline"):
                migrator.migrate()

        assert history.rows == []

    def test_baseline_on_migrate(self, make_migrator, fake_conn, history, three_migrations):
        history.others = ["legacy_table"]

        with make_migrator(baseline_on_migrate=True) as migrator:
            applied = migrator.migrate()
            info = states(migrator.info())

        assert applied == 2
        assert history.rows[0].type == TYPE_BASELINE
        assert "CREATE TABLE idx_btree (id int);" not in fake_conn.statements
        assert info["1"] == BASELINE
        assert info["2"] == SUCCESS

    def test_explicit_baseline(self, make_migrator, history, three_migrations):
        with make_migrator(baseline_version="2") as migrator:
            migrator.baseline()
            assert migrator.migrate() == 1

        assert [r.script for r in history.rows][-1] == "R__overview.sql"

    def test_baseline_refused_with_existing_history(self, make_migrator, history,
                                                    three_migrations):
        with make_migrator() as migrator:
            migrator.migrate()
            with pytest.raises(MigrationError):
                migrator.baseline()


class TestConnectRetry:

    def test_retries_with_backoff(self, make_config, fake_conn, history):
        attempts = []
        sleeps = []

        def connect(**params):
            attempts.append(params)
            if len(attempts) < 4:
                raise psycopg2.OperationalError("could not connect to server")
            return fake_conn

        migrator = Migrator(
            make_config(connect_retries=5, connect_retry_interval=3),
            connect=connect,
            sleep=sleeps.append,
            history_factory=lambda conn, table: history,
        )
        migrator.connect()

        assert len(attempts) == 4
        assert sleeps == [1, 2, 3]
        assert attempts[0]['host'] == "localhost"
        assert attempts[0]['user'] == "postgres"

    def test_gives_up_after_retries(self, make_config):
        sleeps = []

        def connect(**params):
            raise psycopg2.OperationalError("connection refused")

        migrator = Migrator(make_config(connect_retries=2), connect=connect,
                            sleep=sleeps.append)

        with pytest.raises(MigrationError, match="연결할 수 없습니다"):
            migrator.connect()
        assert sleeps == [1, 2]

    def test_closes_connection_on_exit(self, make_migrator, fake_conn, three_migrations):
        with make_migrator() as migrator:
            migrator.migrate()
        assert fake_conn.closed

    def test_session_opens_and_closes_when_not_connected(self, make_migrator, fake_conn,
                                                         three_migrations):
        migrator = make_migrator()
        assert migrator.migrate() == 3
        assert fake_conn.closed
        assert migrator.conn is None


class TestBuildInfo:

    def applied(self, rank, version, type_="SQL", success=True, checksum=0):
        return AppliedMigration(
            installed_rank=rank,
            version=Version(version) if version else None,
            description=f"v{version}",
            type=type_,
            script=f"V{version}__x.sql",
            checksum=checksum,
            installed_by="tester",
            installed_on=None,
            execution_time=1,
            success=success,
        )

    def test_below_baseline_and_above_target(self, write_migration, migrations_dir):
        for v in ("1", "2", "3", "4"):
            write_migration(f"V{v}__m{v}.sql", f"SELECT {v};")
        versioned, repeatable = scan_migrations([migrations_dir])

        rows = build_info(
            [self.applied(1, "2", type_=TYPE_BASELINE)],
            versioned,
            repeatable,
            target=Version("3"),
        )

        assert states(rows) == {
            "1": BELOW_BASELINE,
            "2": BASELINE,
            "3": PENDING,
            "4": ABOVE_TARGET,
        }

    def test_rows_sorted_by_version(self, write_migration, migrations_dir):
        write_migration("V10__ten.sql", "SELECT 10;")
        write_migration("V9__nine.sql", "SELECT 9;")
        versioned, repeatable = scan_migrations([migrations_dir])

        rows = build_info([], versioned, repeatable)
        assert [r.version for r in rows] == ["9", "10"]

    def test_render_info(self, write_migration, migrations_dir):
        write_migration("V1__create_table.sql", "SELECT 1;")
        versioned, repeatable = scan_migrations([migrations_dir])

        output = render_info(build_info([], versioned, repeatable))

        assert "Version" in output
        assert "create table" in output
        assert PENDING in output


class TestDatabaseErrors:

    def test_bom_prefixed_script_sent_without_bom(self, make_migrator, fake_conn, write_migration):
        write_migration("V1__bom.sql", "\ufeffCREATE TABLE bom_t (id int);")

        with make_migrator() as migrator:
            assert migrator.migrate() == 1

        assert fake_conn.statements == ["CREATE TABLE bom_t (id int);"]

    def test_history_error_wrapped(self, make_migrator, fake_conn, history, three_migrations):
        def denied():
            raise psycopg2.ProgrammingError("permission denied for table schema_history")

        history.created = True
        history.applied = denied

        with make_migrator() as migrator:
            with pytest.raises(MigrationError, match="permission denied") as excinfo:
                migrator.info()
            assert isinstance(excinfo.value.__cause__, psycopg2.ProgrammingError)

        assert fake_conn.rollbacks == 1

    def test_lock_error_wrapped(self, make_migrator, history, three_migrations):
        def lock_failed():
            raise psycopg2.OperationalError("server closed the connection unexpectedly")

        history.lock = lock_failed

        migrator = make_migrator()
        with pytest.raises(MigrationError, match="server closed"):
            migrator.migrate()
        assert migrator.conn is None
