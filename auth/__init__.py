"""auth/ -- Session handling and account flows for NoteKeep.

Identities live in the hosted auth backend; this package verifies the tokens
it issues, keeps them in cookies, and drives sign-up, sign-in, password reset
and sign-out.

Layer rule: auth/ imports only core/ plus third-party libraries.
It does NOT import from api/, web/, notes/, or cache/.
api/ and web/ import from auth/, not the other way around.
"""
