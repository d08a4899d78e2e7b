"""Task dispatch protocol.

Correlated task/response envelopes, the closed quality task set, an
in-process event bus and the dispatcher that ties them together.
"""
