"""Session validation and one-time codes backed by Supabase auth."""
