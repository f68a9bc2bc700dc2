import json
import logging
from dataclasses import dataclass

import requests
from web3 import Web3

from config import RPC_URL, CONTRACT_ADDRESS, CONTRACT_ARTIFACT, REQUEST_TIMEOUT

logger = logging.getLogger("evote.contract")


@dataclass
class Candidate:
    id: int
    name: str
    party: str
    vote_count: int

    @classmethod
    def from_row(cls, row) -> "Candidate":
        if isinstance(row, dict):
            return cls(int(row["id"]), row["name"], row["party"], int(row.get("voteCount", row.get("vote_count", 0))))
        cid, name, party, votes = row[:4]
        return cls(int(cid), name, party, int(votes))

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "party": self.party, "voteCount": self.vote_count}


def load_abi(source: str = CONTRACT_ARTIFACT) -> list:
    """Read the ``abi`` list out of a Truffle build artifact given as a file path or URL."""
    if source.startswith(("http://", "https://")):
        r = requests.get(source, timeout=REQUEST_TIMEOUT)
        r.raise_for_status()
        artifact = r.json()
    else:
        with open(source, "r") as f:
            artifact = json.load(f)
    abi = artifact.get("abi") if isinstance(artifact, dict) else artifact
    if not isinstance(abi, list):
        raise ValueError(f"Failed to load contract ABI from {source}")
    return abi


class VotingContract:
    """Thin web3.py adapter over the deployed Voting contract; writes block until mined."""

    def __init__(self, w3, address: str, abi: list, sender: str):
        self.w3 = w3
        self.sender = Web3.to_checksum_address(sender)
        self.contract = w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    @classmethod
    def connect(cls, sender: str, rpc_url: str = RPC_URL, address: str = CONTRACT_ADDRESS,
                artifact: str = CONTRACT_ARTIFACT) -> "VotingContract":
        w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": REQUEST_TIMEOUT}))
        return cls(w3, address, load_abi(artifact), sender)

    def _transact(self, fn):
        tx_hash = fn.transact({"from": self.sender})
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash)
        logger.info("transaction mined hash=%s status=%s", Web3.to_hex(tx_hash), receipt.get("status"))
        return receipt

    def get_all_candidates(self) -> list[Candidate]:
        return [Candidate.from_row(r) for r in self.contract.functions.getAllCandidates().call()]

    def has_voted(self, address: str) -> bool:
        return bool(self.contract.functions.hasVoted(Web3.to_checksum_address(address)).call())

    def vote(self, candidate_id: int):
        return self._transact(self.contract.functions.vote(int(candidate_id)))

    def add_candidate(self, name: str, party: str):
        return self._transact(self.contract.functions.addCandidate(name, party))

    def set_voting_dates(self, start: int, end: int):
        return self._transact(self.contract.functions.setVotingDates(int(start), int(end)))

    def update_voting_dates(self, start: int, end: int):
        return self._transact(self.contract.functions.updateVotingDates(int(start), int(end)))
