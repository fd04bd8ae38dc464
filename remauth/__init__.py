"""REM Auth: relying party for the AD Auth identity provider."""
