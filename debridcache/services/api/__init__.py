from debridcache.services.api.gate import CallGate, call_gate

__all__ = ["CallGate", "call_gate"]
