# Supabase tables: threads, messages
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

threads:
- id: uuid (primary key)
- client_id: uuid (foreign key to clients.id, cascade delete)
- user_id: uuid (foreign key to users.id) - creator and owner
- title: text (not null)
- created_at: timestamp (default: now())
- updated_at: timestamp (default: now()) - bumped on every new message

messages:
- id: uuid (primary key)
- thread_id: uuid (foreign key to threads.id, cascade delete)
- role: text - values: user, assistant, system
- content: text (not null)
- citations: jsonb (nullable) - assistant answers only
- metadata: jsonb (nullable) - requestId, confidence, processingTimeMs, stateCode...
- created_at: timestamp (default: now())
"""
