from duplex_chat.cli import peer

peer()
