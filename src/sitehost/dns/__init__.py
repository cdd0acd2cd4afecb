"""DNS record provisioning for published sites."""

from sitehost.dns.provisioner import DNSProvisioner, DNSRecord, LocalDNSProvisioner

__all__ = ["DNSProvisioner", "DNSRecord", "LocalDNSProvisioner"]
