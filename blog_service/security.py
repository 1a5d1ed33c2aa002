from passlib.context import CryptContext

# argon2 has no 72-byte input limit, unlike bcrypt
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_credential(credential: str) -> str:
    return pwd_context.hash(credential)


def verify_credential(credential: str, stored_hash: str) -> bool:
    try:
        return pwd_context.verify(credential, stored_hash)
    except ValueError:
        # Stored value is not a recognised hash
        return False
