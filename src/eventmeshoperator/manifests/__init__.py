"""Loading, transforming and installing the release manifests of Knative
Eventing and the Kafka broker.
"""
