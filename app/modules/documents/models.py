# Supabase table: documents
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

documents:
- id: uuid (primary key)
- client_id: uuid (foreign key to clients.id, cascade delete)
- name: text (not null) - display name chosen at upload
- type: text - values: W2, 1099, Receipt, Prior Return, Other
- storage_path: text (not null) - object key in the "documents" bucket,
  formatted as {client_id}/{epoch_ms}-{sanitized_name}.{ext}
- file_size: integer (bytes)
- mime_type: text
- uploaded_by: uuid (foreign key to users.id, nullable)
- extraction_status: text (default: 'pending') - values: pending, processing, completed, failed
- extracted_data: jsonb (nullable) - {documentType, confidence, extractedData, rawFields}
- extracted_at: timestamp (nullable)
- extraction_error: text (nullable)
- created_at: timestamp (default: now())
"""
