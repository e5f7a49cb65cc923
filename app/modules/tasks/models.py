# Supabase table: tasks
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

tasks:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id) - owner
- client_id: uuid (foreign key to clients.id, nullable)
- thread_id: uuid (foreign key to threads.id, nullable)
- title: text (not null)
- status: text (default: 'in_progress') - values: in_progress, ready, complete, failed
- current_step: integer (default: 0)
- steps: jsonb (default: []) - [{label, status: pending | running | done}]
- attached_file: text (nullable)
- error_message: text (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (default: now())
- completed_at: timestamp (nullable) - set when status becomes complete or failed
"""
