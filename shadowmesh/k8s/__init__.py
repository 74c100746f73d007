"""Kubernetes resource models, labels, resource filtering and SMI version checks."""