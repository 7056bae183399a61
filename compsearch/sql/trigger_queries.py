"""
DDL for the change-notification trigger on compensation_data.

The trigger publishes one JSON payload per mutated row on the change channel:

    {"operation": "INSERT" | "UPDATE" | "DELETE", "id": <key>, "data": <row or null>}

`data` is the new row for INSERT/UPDATE and null for DELETE.
"""

from compsearch.sql.compensation_queries import TABLE_NAME

NOTIFY_FUNCTION_NAME = 'notify_compensation_change'
TRIGGER_NAME = 'compensation_data_change_trigger'


def _quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def get_notify_function_ddl(channel: str) -> str:
    """CREATE OR REPLACE the trigger function publishing on `channel`."""
    return f"""
    CREATE OR REPLACE FUNCTION {NOTIFY_FUNCTION_NAME}()
    RETURNS trigger AS $$
    BEGIN
        IF TG_OP = 'DELETE' THEN
            PERFORM pg_notify({_quote_literal(channel)},
                json_build_object(
                    'operation', TG_OP,
                    'id', OLD.id,
                    'data', NULL
                )::text
            );
        ELSE
            PERFORM pg_notify({_quote_literal(channel)},
                json_build_object(
                    'operation', TG_OP,
                    'id', NEW.id,
                    'data', row_to_json(NEW)
                )::text
            );
        END IF;
        RETURN NULL;
    END;
    $$ LANGUAGE plpgsql;
    """


def get_drop_trigger_ddl() -> str:
    return f"DROP TRIGGER IF EXISTS {TRIGGER_NAME} ON {TABLE_NAME}"


def get_create_trigger_ddl() -> str:
    return f"""
    CREATE TRIGGER {TRIGGER_NAME}
        AFTER INSERT OR UPDATE OR DELETE ON {TABLE_NAME}
        FOR EACH ROW EXECUTE FUNCTION {NOTIFY_FUNCTION_NAME}()
    """
