"""
Example: Basic SQL usage with fmsql
===================================

This example shows how to run SQL against a FileMaker database through
the Data API.
"""

from fmsql import Connection, FMConfig, FMDataSession, SchemaMetadata


def example_basic_query():
    """Select rows with bound parameters."""

    with Connection("fms.example.com", "Contacts", "API_USER", "PASSWORD") as conn:
        stmt = conn.query(
            "SELECT t0.rec_id AS id_0, t0.name AS name_1 FROM Contacts t0 "
            "WHERE t0.city = ? ORDER BY t0.name LIMIT 50",
            ["Leeds"],
        )
        print(f"Found {stmt.rowcount} contacts")
        for row in stmt:
            print(row["id_0"], row["name_1"])


def example_transaction():
    """Queue writes and send them in order on commit."""

    # Reads from environment variables: FM_HOST, FM_DATABASE, FM_USER, FM_PASS
    with Connection(metadata=SchemaMetadata({"Contacts": "id"})) as conn:
        conn.begin_transaction()
        conn.query("INSERT INTO Contacts (name, city) VALUES (?, ?)", ["Ada", "Leeds"])
        print("New contact id:", conn.last_insert_id())

        conn.query("UPDATE Contacts SET city = :city WHERE rec_id = :rec", {"city": "York", "rec": 12})
        conn.commit()


def example_script():
    """Run a FileMaker script."""

    with Connection() as conn:
        result = conn.run_script("Contacts", "Count Active", "Leeds")
        print(f"Script error {result.error}: {result.result}")


def example_raw_session():
    """Talk to the Data API directly."""

    cfg = FMConfig(
        host="fms.example.com",
        database="Contacts",
        user="API_USER",
        password="PASSWORD",
        retries=2,
    )
    with FMDataSession(cfg) as sess:
        records = sess.perform_request(
            "POST",
            "layouts/Contacts/_find",
            {"json": {"query": [{"city": "==Leeds"}], "limit": "10"}},
        )
        print(f"Found {len(records)} records", sess.last_metadata)


if __name__ == "__main__":
    # Uncomment the example you want to run
    # example_basic_query()
    # example_transaction()
    # example_script()
    # example_raw_session()
    pass
