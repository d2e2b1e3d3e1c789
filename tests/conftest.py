import sqlite3
from collections.abc import Iterator

import pytest

from dbmodel import Schema, SchemaConfig, SyncDriver

EMPLOYEES = [
    (1, "Alice", "Martin", 1, 5200, "1980-03-11"),
    (2, "Bob", "Durand", 1, 4100, "1975-07-02"),
    (3, "Carol", "Bernard", 2, 6100, "1990-12-24"),
    (4, "Dave", "Petit", 2, 3900, None),
    (5, "Eve", "Robert", 2, 4800, "1985-05-30"),
    (6, "Frank", "Richard", 3, 3500, "1993-01-15"),
    (7, "Grace", "Moreau", 3, 4400, "1979-09-09"),
    (8, "Heidi", "Simon", 3, 5000, "1988-02-29"),
    (9, "Ivan", "Laurent", 1, 4700, "1970-10-10"),
    (10, "Judy", "Michel", 2, 5600, "1995-06-06"),
]


@pytest.fixture
def connection() -> "Iterator[sqlite3.Connection]":
    conn = sqlite3.connect(":memory:")
    conn.executescript(
        """
        CREATE TABLE department (dpt_id INTEGER PRIMARY KEY, dpt_name TEXT NOT NULL);
        CREATE TABLE employee (
            emp_id INTEGER PRIMARY KEY,
            firstname TEXT,
            lastname TEXT,
            dpt_id INTEGER REFERENCES department (dpt_id),
            salary INTEGER,
            d_birth TEXT
        );
        CREATE TABLE assignment (
            emp_id INTEGER,
            dpt_id INTEGER,
            role TEXT,
            PRIMARY KEY (emp_id, dpt_id)
        );
        INSERT INTO department VALUES (1, 'Sales'), (2, 'R&D'), (3, 'Support');
        INSERT INTO assignment VALUES (1, 1, 'lead'), (1, 2, 'advisor'), (3, 2, 'lead');
        """
    )
    conn.executemany("INSERT INTO employee VALUES (?, ?, ?, ?, ?, ?)", EMPLOYEES)
    conn.commit()
    yield conn
    conn.close()


@pytest.fixture
def driver(connection: sqlite3.Connection) -> SyncDriver:
    return SyncDriver(connection)


@pytest.fixture
def schema(driver: SyncDriver) -> Schema:
    """HR schema: departments, employees, assignments and an employee/department join."""
    schema = Schema("HR", driver=driver, config=SchemaConfig(dialect="sqlite"))
    schema.define_table("Department", db_name="department", primary_key="dpt_id")
    schema.define_table("Employee", db_name="employee", primary_key="emp_id")
    schema.define_table("Assignment", db_name="assignment", primary_key=["emp_id", "dpt_id"])
    schema.define_join(
        "EmployeeDepartment",
        "employee",
        [{"table": "department", "condition": "employee.dpt_id = department.dpt_id", "using": ["dpt_id"]}],
    )
    return schema
