"""
Umbra zk
========

Cryptographic building blocks for the treasury: Poseidon hashing, the Baby
Jubjub embedded curve, the BN254 Groth16 verifier and snarkjs artifact I/O.
"""
