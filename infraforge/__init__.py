"""Terraform configuration and runs for cluster nodepools, load balancers and DNS records."""

__version__ = "0.1.0"