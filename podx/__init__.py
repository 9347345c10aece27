"""
PODX encrypts secret files so they can be committed to a git repository.

A project is configured by a '.podx.yaml' file listing the age public keys of
the team and the glob patterns of the secret files. Encrypting a secret writes
a '.podx' file next to it and deletes the plaintext; decrypting writes the
plaintext back and keeps the '.podx' file as the source of truth.

Environment files (names starting or ending with '.env') are encrypted one
value at a time, so comments, blank lines and keys stay readable:

\b
    API_KEY=ENC[age:YWdlLWVuY3J5cHRpb24...]

Generate a key and start a project:

\b
    $ podx keygen
    $ podx init

Add a team member and a secret pattern:

\b
    $ podx add-recipient -n "Alice" -k age1...
    $ podx add-secret "config/*.json"

Encrypt every secret before committing, decrypt after pulling:

\b
    $ podx encrypt-all
    $ podx decrypt-all

Single files can also be encrypted with a shared password:

\b
    $ podx encrypt -i backup.tar -a chacha20
    $ podx env encrypt -i .env.production
"""

__version__ = '1.0.0'
