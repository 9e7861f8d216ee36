"""RFID Communication Module.

BAC key derivation and handshake, secure messaging and elementary file
access for ICAO Doc 9303 passport chips.
"""
