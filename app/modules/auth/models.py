# Supabase Auth
# This module uses Supabase's built-in authentication system
# Identities live in auth.users; the public.users profile row (see
# app/modules/clients/models.py) links each identity to an organization.

"""
Supabase Auth calls used here:
- auth.sign_up() - register with email and password, confirmation mail redirects to /api/auth/callback
- auth.sign_in_with_password() - password login
- auth.sign_in_with_otp() - passwordless magic link
- auth.reset_password_for_email() - password reset mail
- auth.get_user() - resolve the user behind a bearer JWT
- auth.sign_out() - end the session

user_metadata.full_name is set at signup.
"""
