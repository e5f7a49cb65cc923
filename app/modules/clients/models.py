# Supabase tables: organizations, users, clients
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

organizations:
- id: uuid (primary key)
- name: text (not null)
- slug: text (unique)
- plan: text - values: free, pro, enterprise
- settings: jsonb
- created_at: timestamp (default: now())

users:
- id: uuid (primary key, matches auth.users.id)
- organization_id: uuid (foreign key to organizations.id, nullable)
- email: text
- full_name: text (nullable)
- role: text - values: owner, admin, member
- created_at: timestamp (default: now())

clients:
- id: uuid (primary key)
- organization_id: uuid (foreign key to organizations.id, not null)
- name: text (not null)
- state: char(2) (not null) - selects the RAG backend for the client's questions
- tax_year: integer (not null)
- filing_status: text - values: Single, MFJ, MFS, HoH, QW
- ssn_last_four: char(4) (nullable)
- gross_income: numeric (nullable)
- sched_c_revenue: numeric (nullable)
- dependents: integer (nullable)
- metadata: jsonb (default: {})
- created_at: timestamp (default: now())
- updated_at: timestamp (default: now())
"""
