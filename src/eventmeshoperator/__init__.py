"""A Kubernetes operator that installs and scales Knative Eventing and the
Knative Kafka broker from a single EventMesh resource.
"""
