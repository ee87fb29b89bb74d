"""x402 payment handshake: models, header codecs, signing and authorities"""
