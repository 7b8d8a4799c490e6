"""
Row Level Security policy declarations for tenant tables.

Policies are evaluated against two transaction-local settings:

- ``app.current_user_id``: internal id of the caller. Unset or empty means no
  caller, and every protected row is invisible.
- ``app.bypass_rls``: ``'on'`` while installation code runs unrestricted.

The migration applies these declarations; ``app.core.isolation`` is the only
code that writes the settings.
"""

from __future__ import annotations

from dataclasses import dataclass

USER_SETTING = "app.current_user_id"
BYPASS_SETTING = "app.bypass_rls"
POLICY_NAME = "tenant_isolation"

# Non-owner role the service connects as (see Settings.database_role)
APP_ROLE = "dealtodo_app"

CURRENT_USER = f"NULLIF(current_setting('{USER_SETTING}', true), '')::uuid"
BYPASS = f"coalesce(current_setting('{BYPASS_SETTING}', true), '') = 'on'"


def member_of(org_column: str) -> str:
    """Predicate: the caller has a membership in the organization ``org_column``."""
    return (
        "EXISTS (SELECT 1 FROM user_organizations m "
        f"WHERE m.organization_id = {org_column} "
        f"AND m.user_id = {CURRENT_USER})"
    )


@dataclass(frozen=True)
class RowPolicy:
    table: str
    predicate: str

    @property
    def expression(self) -> str:
        return f"({BYPASS}) OR ({self.predicate})"

    def create_statements(self) -> list[str]:
        return [
            f"ALTER TABLE {self.table} ENABLE ROW LEVEL SECURITY",
            # Table owners are subject to the policy too
            f"ALTER TABLE {self.table} FORCE ROW LEVEL SECURITY",
            f"DROP POLICY IF EXISTS {POLICY_NAME} ON {self.table}",
            (
                f"CREATE POLICY {POLICY_NAME} ON {self.table} "
                f"USING ({self.expression}) "
                f"WITH CHECK ({self.expression})"
            ),
        ]

    def drop_statements(self) -> list[str]:
        return [
            f"DROP POLICY IF EXISTS {POLICY_NAME} ON {self.table}",
            f"ALTER TABLE {self.table} NO FORCE ROW LEVEL SECURITY",
            f"ALTER TABLE {self.table} DISABLE ROW LEVEL SECURITY",
        ]


RLS_POLICIES: list[RowPolicy] = [
    RowPolicy("organizations", member_of("organizations.id")),
    RowPolicy("users", f"users.id = {CURRENT_USER}"),
    RowPolicy("user_organizations", f"user_organizations.user_id = {CURRENT_USER}"),
    RowPolicy(
        "oauth_tokens",
        f"oauth_tokens.user_id = {CURRENT_USER} AND {member_of('oauth_tokens.organization_id')}",
    ),
    RowPolicy("todos", member_of("todos.organization_id")),
]


def grant_statements(role: str = APP_ROLE) -> list[str]:
    tables = ", ".join(policy.table for policy in RLS_POLICIES)
    return [f"GRANT SELECT, INSERT, UPDATE, DELETE ON {tables} TO {role}"]
