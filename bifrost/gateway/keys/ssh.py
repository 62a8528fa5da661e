import asyncio
import os
import tempfile
from dataclasses import dataclass

@dataclass
class SshKeyPair:
    public_key: str
    private_key: str

class KeyGenerationError(RuntimeError):
    pass

async def generate_ssh_key_pair(name: str) -> SshKeyPair:
    """Generate an RSA key pair with ssh-keygen. Requires the OpenSSH client binaries on the host."""
    with tempfile.TemporaryDirectory(prefix="bifrost-ssh-") as workdir:
        key_path = os.path.join(workdir, "key")
        proc = await asyncio.create_subprocess_exec(
            "ssh-keygen", "-q", "-t", "rsa", "-b", "2048", "-N", "", "-C", name, "-f", key_path,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise KeyGenerationError(f"ssh-keygen exited with {proc.returncode}: {stderr.decode(errors='replace').strip()}")

        with open(key_path + ".pub", "r") as f:
            public_key = f.read()
        with open(key_path, "r") as f:
            private_key = f.read()
    return SshKeyPair(public_key=public_key, private_key=private_key)
