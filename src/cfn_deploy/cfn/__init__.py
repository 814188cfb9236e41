"""
CloudFormation stacks: inspection, deletion waiter and the two stack deployers.
"""
