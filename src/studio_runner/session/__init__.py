"""One studio run: launch, bridge, drain, reap.

The launched application and this process share nothing but a local TCP
connection. A bridge thread owns the listener and the producer end of a
``MessageChannel``; the calling thread owns the consumer end and turns the
stream of output events into counts and an exit code. The session token
only keeps concurrent runs on a shared port apart; it is not an auth scheme.
"""
