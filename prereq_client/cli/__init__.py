# Command-line entry points: prereq-keygen, prereq-airdrop, prereq-transfer, prereq-enroll, prereq-convert.
