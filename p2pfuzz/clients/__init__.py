from p2pfuzz.clients.chain import FundedIdentity, FundingChain, LocalDevChain

__all__ = ["FundedIdentity", "FundingChain", "LocalDevChain"]
