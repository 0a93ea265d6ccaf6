"""Script Labs: per-user lab records over Postgres with Supabase-backed auth."""

__version__ = "1.0.0"
