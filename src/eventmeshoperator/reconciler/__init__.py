"""The staged reconcile pass of an EventMesh."""
